"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from procureflow.api.routes import agent, purchase_requests

__all__ = [
    "agent",
    "purchase_requests",
]
