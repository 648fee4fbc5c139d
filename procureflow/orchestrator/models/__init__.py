"""Pydantic models for intents and tool arguments."""
