"""Keep internal failure detail out of chat replies and HTTP error bodies.

Exceptions raised by the model backend or the data provider can carry
connection strings, row ids from other tenants or file paths. Callers only
ever see one of a handful of fixed messages; the full error goes to the log.
"""

import re

_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"https?://\S+"), "[url]"),
    (re.compile(r"(?<![\w.])/[\w./-]+"), "[path]"),
    (re.compile(r"0x[0-9a-fA-F]+"), "[address]"),
    (re.compile(r"\bline \d+"), "[line]"),
]

# First matching rule wins; each rule lists type-name and text fragments.
_CATEGORIES: list[tuple[tuple[str, ...], str]] = [
    (
        ("timeout", "timed out"),
        "The project data took too long to load. Please try again in a moment.",
    ),
    (
        ("connect", "unreachable"),
        "The assistant could not reach the project service. Please try again shortly.",
    ),
    (("ratelimit", "rate limit"), "Too many requests. Please wait a moment and try again."),
    (("permission", "forbidden"), "You don't have access to that in this project."),
    (("validation", "invalid"), "That request couldn't be understood. Please rephrase it."),
    (("notfound", "not found"), "That item couldn't be found in this project."),
    (("config",), "The assistant is misconfigured. Please contact your administrator."),
]

GENERIC_FAILURE = "Something went wrong while working on your request. Please try again."


def redact(text: str) -> str:
    """Mask URLs, filesystem paths, memory addresses and line numbers."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_error_message(error: Exception) -> str:
    """Map an exception to a fixed, caller-safe message.

    Args:
        error: The exception that occurred.

    Returns:
        One of the category messages, or ``GENERIC_FAILURE``.
    """
    haystack = f"{type(error).__name__} {redact(str(error))}".lower()
    for fragments, message in _CATEGORIES:
        if any(fragment in haystack for fragment in fragments):
            return message
    return GENERIC_FAILURE
