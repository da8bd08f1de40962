"""HTTP API for practising foreign-language phrases, backed by MongoDB and Redis."""

__version__ = "0.1.0"