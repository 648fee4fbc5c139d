"""Service layer for ProcureFlow.

Catalog, cart, checkout, and conversation persistence services, plus
the input safety, moderation, and retry envelopes used by the agent
turn handler.
"""
