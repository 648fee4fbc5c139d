"""ProcureFlow procurement backend with a conversational assistant."""

__version__ = "0.1.0"
