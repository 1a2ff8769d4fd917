"""chatrelay - chat session relay for the business backend."""

__version__ = "0.1.0"
