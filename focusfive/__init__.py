"""FocusFive: three-category daily tracking with a plain-text record and JSON side-stores."""

__version__ = "0.1.0"
