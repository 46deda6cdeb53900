"""A small LAN chat server with a JSON polling API for browser clients."""

__version__ = "0.1.0"
__all__ = ["models", "utils", "handlers", "server"]