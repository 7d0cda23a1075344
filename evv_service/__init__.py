"""Electronic Visit Verification (EVV) service."""

__version__ = "1.0.0"
