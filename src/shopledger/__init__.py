"""shopledger - a minimal online-shop backend."""

__version__ = "0.1.0"
