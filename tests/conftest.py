import os
import sys
import tempfile
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep test runs out of the project's logs/ and away from a user config.
os.environ.setdefault("FOCUSFIVE_LOG_DIR", tempfile.mkdtemp(prefix="focusfive_logs_"))
os.environ.setdefault("FOCUSFIVE_CONFIG", os.path.join(tempfile.gettempdir(), "focusfive_no_config.yaml"))
