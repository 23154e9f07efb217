"""Message delivery and conversation history for the ahi chat client."""

__version__ = "0.1.0"
