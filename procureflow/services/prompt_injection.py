"""Prompt-injection detection for user messages.

Heuristic pattern matching against phrases that try to override
instructions, leak the system prompt, reassign the assistant's role,
smuggle commands or delimiters, or trigger known jailbreaks. False
positives are possible; the patterns stay deliberately narrow.

Example:
    result = detect_prompt_injection("Ignore previous instructions")
    result.detected   # True
    result.severity   # "high"
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from procureflow.errors import PromptInjectionError
from procureflow.services.metrics import (
    prompt_injection_detections_total,
    validation_errors_total,
)

logger = logging.getLogger(__name__)


class InjectionCategory(str, Enum):
    """Pattern families checked by the detector."""

    INSTRUCTION_OVERRIDE = "instruction_override"
    SYSTEM_PROMPT_LEAK = "system_prompt_leak"
    ROLE_MANIPULATION = "role_manipulation"
    COMMAND_INJECTION = "command_injection"
    DELIMITER_ESCAPE = "delimiter_escape"
    JAILBREAK = "jailbreak"
    SUSPICIOUS_SEQUENCE = "suspicious_sequence"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_TARGETS = r"(?:instructions|commands|prompts|rules)"
_SCOPE = r"(?:previous|all|above|prior)"
_PROMPT = r"(?:system|original|initial)\s+(?:prompt|instructions)"

_PATTERNS: list[tuple[InjectionCategory, re.Pattern[str]]] = [
    (InjectionCategory.INSTRUCTION_OVERRIDE, re.compile(rf"\b(?:ignore|disregard|forget|override)\s+{_SCOPE}\s+{_TARGETS}", re.I)),
    (InjectionCategory.SYSTEM_PROMPT_LEAK, re.compile(rf"\bshow\s+(?:me\s+)?(?:your|the)\s+{_PROMPT}", re.I)),
    (InjectionCategory.SYSTEM_PROMPT_LEAK, re.compile(rf"\bwhat\s+(?:are|is)\s+(?:your|the)\s+{_PROMPT}", re.I)),
    (InjectionCategory.SYSTEM_PROMPT_LEAK, re.compile(rf"\b(?:reveal|print)\s+(?:your|the)\s+{_PROMPT}", re.I)),
    (InjectionCategory.ROLE_MANIPULATION, re.compile(r"\byou\s+are\s+now\s+(?:a|an)\s+", re.I)),
    # Procurement roles are legitimate requests
    (InjectionCategory.ROLE_MANIPULATION, re.compile(r"\bact\s+as\s+(?:a|an)\s+(?!procurement|purchasing|agent)", re.I)),
    (InjectionCategory.ROLE_MANIPULATION, re.compile(r"\bpretend\s+(?:to\s+be|you\s+are)", re.I)),
    (InjectionCategory.ROLE_MANIPULATION, re.compile(r"\bsimulate\s+(?:being|a|an)\b", re.I)),
    (InjectionCategory.COMMAND_INJECTION, re.compile(r"\b(?:execute|run)\s+(?:command|code|script)", re.I)),
    (InjectionCategory.COMMAND_INJECTION, re.compile(r"\b(?:eval|system)\s*\(", re.I)),
    (InjectionCategory.DELIMITER_ESCAPE, re.compile(r"```\s*system", re.I)),
    (InjectionCategory.DELIMITER_ESCAPE, re.compile(r"\[SYSTEM\]|\{SYSTEM\}", re.I)),
    (InjectionCategory.DELIMITER_ESCAPE, re.compile(r"<\|(?:system|assistant)\|>", re.I)),
    (InjectionCategory.JAILBREAK, re.compile(r"\b(?:DAN|developer|god|sudo)\s+mode\b", re.I)),
]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

_SUSPICIOUS_SEQUENCES: list[tuple[str, re.Pattern[str]]] = [
    ("control_characters", _CONTROL_CHARS),
    ("percent_run", re.compile(r"%{10,}")),
    ("backslash_run", re.compile(r"\\{10,}")),
    ("backtick_fence", re.compile(r"`{3,}")),
]


@dataclass(frozen=True)
class InjectionResult:
    """Outcome of scanning one message.

    Attributes:
        detected: True when any pattern or suspicious sequence matched.
        matched_patterns: Regex sources (or sequence names) that matched.
        categories: Distinct categories, in first-match order.
        severity: high for any pattern match, medium for sequences only.
        sanitized_text: Input with control characters stripped and
            whitespace collapsed.
    """

    detected: bool
    matched_patterns: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    severity: Severity = Severity.LOW
    sanitized_text: str = ""


def sanitize_input(text: str) -> str:
    """Strip control characters and collapse whitespace. No rewriting."""
    return " ".join(_CONTROL_CHARS.sub("", text).split())


def detect_prompt_injection(text: str) -> InjectionResult:
    """Scan text for injection patterns and suspicious sequences.

    Args:
        text: Raw user input.

    Returns:
        InjectionResult describing what matched.
    """
    matched: list[str] = []
    categories: list[str] = []
    severity = Severity.LOW

    for category, pattern in _PATTERNS:
        if pattern.search(text):
            matched.append(pattern.pattern)
            if category.value not in categories:
                categories.append(category.value)
            severity = Severity.HIGH

    for name, pattern in _SUSPICIOUS_SEQUENCES:
        if pattern.search(text):
            matched.append(f"suspicious_sequence:{name}")
            if InjectionCategory.SUSPICIOUS_SEQUENCE.value not in categories:
                categories.append(InjectionCategory.SUSPICIOUS_SEQUENCE.value)
            if severity is not Severity.HIGH:
                severity = Severity.MEDIUM

    return InjectionResult(
        detected=bool(matched),
        matched_patterns=matched,
        categories=categories,
        severity=severity,
        sanitized_text=sanitize_input(text),
    )


def validate_user_input(text: str, strict: bool = False) -> str:
    """Reject unsafe input and return the sanitized text.

    Default mode rejects only high-severity detections; strict mode
    rejects any detection. Every detection is counted per category,
    whether or not it is rejected.

    Args:
        text: Raw user input.
        strict: Reject on any detection.

    Returns:
        Sanitized text.

    Raises:
        PromptInjectionError: If the input is rejected. The message names
            the categories only, never the matched text.
    """
    result = detect_prompt_injection(text)
    if not result.detected:
        return result.sanitized_text

    logger.warning(
        "Prompt injection detected: severity=%s categories=%s input_length=%d",
        result.severity.value,
        result.categories,
        len(text),
    )
    for category in result.categories:
        prompt_injection_detections_total.labels(category=category).inc()
    validation_errors_total.labels(type="prompt_injection").inc()

    if strict or result.severity is Severity.HIGH:
        raise PromptInjectionError(result.categories, result.severity.value)
    return result.sanitized_text


def is_input_safe(text: str) -> bool:
    """Non-raising check: True when nothing above low severity matched."""
    result = detect_prompt_injection(text)
    return not result.detected or result.severity is Severity.LOW


def analyze_input_safety(text: str) -> dict[str, Any]:
    """Detailed safety analysis for debugging and monitoring.

    Args:
        text: Raw user input.

    Returns:
        Dict with the detection fields plus input/sanitized lengths and
        whether sanitization changed anything.
    """
    result = detect_prompt_injection(text)
    return {
        "safe": not result.detected,
        "detected": result.detected,
        "severity": result.severity.value,
        "categories": list(result.categories),
        "matched_patterns": list(result.matched_patterns),
        "sanitized_text": result.sanitized_text,
        "input_length": len(text),
        "sanitized_length": len(result.sanitized_text),
        "changes_made": text != result.sanitized_text,
    }
