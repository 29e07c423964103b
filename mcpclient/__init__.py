"""Model Context Protocol client with a pluggable transport and a stdio subprocess transport."""

__version__ = "0.1.0"
__all__ = ["client", "stdio"]