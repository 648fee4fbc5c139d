"""Test helper utilities."""

from tests.helpers.fakes import FakeCompletionProvider, FakeModerationProvider, StatusError
from tests.helpers.metrics import sample_value

__all__ = [
    "FakeCompletionProvider",
    "FakeModerationProvider",
    "StatusError",
    "sample_value",
]
