"""Point-of-sale cart API."""

__version__ = "0.1.0"
