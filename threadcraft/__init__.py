"""ThreadCraft workflow engine and analytics."""

__version__ = "0.1.0"
