"""shellmate: a terminal AI assistant with local tools."""

__version__ = "3.1.0"
