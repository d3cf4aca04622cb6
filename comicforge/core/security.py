"""
Security Utilities
==================

Prompt sanitization and secret redaction.
"""

import re
import logging

logger = logging.getLogger(__name__)


def sanitize_prompt(prompt: str, max_length: int = 4000) -> str:
    """
    Sanitize a character description or regeneration guidance before it is
    placed in a portrait prompt.

    Panel scene text and dialogue are quoted verbatim and do not pass
    through here.

    Args:
        prompt: Character description or regeneration guidance
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not prompt:
        return ""

    # Remove control characters
    sanitized = "".join(char for char in prompt if char.isprintable() or char in "\n\t")

    # Markers used to manipulate the model
    injection_patterns = [
        r"ignore previous instructions",
        r"disregard above",
        r"\[INST\]",
        r"\[/INST\]",
        r"<\|im_start\|>",
        r"<\|im_end\|>",
    ]

    for pattern in injection_patterns:
        sanitized = re.sub(pattern, "", sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        logger.warning(f"Prompt text truncated from {len(prompt)} to {max_length} characters")

    return sanitized.strip()


def redact_api_key(text: str) -> str:
    """
    Redact API keys and sensitive tokens from text.

    The Gemini key travels as a ``key=`` query parameter, so any error
    message that echoes the request URL must pass through here.

    Args:
        text: Text that might contain API keys

    Returns:
        Text with API keys redacted
    """
    if not text:
        return text

    patterns = [
        # Generic Bearer tokens
        (r"Bearer\s+[A-Za-z0-9_\-\.]+", "Bearer ***REDACTED***"),
        # Google API keys
        (r"AIza[A-Za-z0-9_\-]{35}", "AIza***REDACTED***"),
        # Query-string keys
        (r"([?&]key=)[^&\s'\"]+", r"\1***REDACTED***"),
        # Generic API key patterns
        (r"api[_-]?key['\"]?\s*[:=]\s*['\"]?[A-Za-z0-9_\-]+", "api_key: ***REDACTED***"),
        # Environment variable patterns
        (r"(GEMINI_API_KEY|GOOGLE_API_KEY)=[^\s]+", r"\1=***REDACTED***"),
    ]

    result = text
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    return result
