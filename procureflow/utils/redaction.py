"""Redaction helpers for logs, persisted action parameters, and error text.

Dict keys are matched case-insensitively by substring, so ``cardNumber``
and ``billing_card_number`` are both caught by the ``card`` pattern.
"""

import re
from typing import Any

SENSITIVE_KEY_PATTERNS = frozenset({
    "api_key", "apikey", "secret", "token", "password", "authorization",
    "credential", "card", "cvv", "cvc", "iban", "account_number",
})

_REDACTED = "***REDACTED***"


def _is_sensitive(key: str, patterns: frozenset[str]) -> bool:
    lowered = key.lower().replace("-", "_")
    return any(p in lowered for p in patterns)


def _redact_value(value: Any, patterns: frozenset[str]) -> Any:
    if isinstance(value, dict):
        return redact_for_logging(value, patterns)
    if isinstance(value, (list, tuple)):
        return [_redact_value(v, patterns) for v in value]
    return value


def redact_for_logging(
    obj: dict,
    sensitive_patterns: frozenset[str] = SENSITIVE_KEY_PATTERNS,
) -> dict:
    """Return a copy of obj with sensitive values replaced.

    Args:
        obj: Mapping to redact. Not mutated.
        sensitive_patterns: Lowercase substrings that mark a key as
            sensitive.

    Returns:
        New dict, recursively redacted through nested dicts and lists.
    """
    return {
        key: _REDACTED
        if _is_sensitive(str(key), sensitive_patterns)
        else _redact_value(value, sensitive_patterns)
        for key, value in obj.items()
    }


_KEYWORDS = (
    r"api[_-]?key|secret|token|password|authorization|credential|"
    r"card[_-]?number|cvv|cvc"
)
_SECRET_IN_TEXT = re.compile(
    r"(?i)"
    r"(?:Bearer\s+[A-Za-z0-9._\-]+"
    r'|"(?:' + _KEYWORDS + r')"\s*:\s*"[^"]*"'
    r"|(?:" + _KEYWORDS + r")\s*[=:]\s*\"[^\"]*\""
    r"|(?:" + _KEYWORDS + r")\s*[=:]\s*\S+"
    r"|sk-[A-Za-z0-9_\-]{8,}"
    r"|\b(?:\d[ -]?){13,19}\b)"
)


def sanitize_error_message(msg: str | None, max_length: int = 500) -> str | None:
    """Strip secrets from free-text error messages and truncate.

    Catches key=value pairs, JSON-style pairs, bearer tokens, provider
    API keys (sk-...), and card-number-shaped digit runs.

    Args:
        msg: Message to sanitize. None passes through.
        max_length: Maximum length of the result.

    Returns:
        Sanitized message, or None.
    """
    if msg is None:
        return None
    cleaned = _SECRET_IN_TEXT.sub(_REDACTED, msg)
    if len(cleaned) > max_length:
        cleaned = cleaned[: max_length - 3] + "..."
    return cleaned
