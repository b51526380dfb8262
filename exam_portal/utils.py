"""Utility functions for sanitization and validation."""

import bleach

REVIEW_MAX_LENGTH = 5000


def sanitize_review_message(text: str) -> str:
    """Sanitize an evaluator review message.

    Strips all HTML so the thread renders as plain text.
    """
    sanitized = bleach.clean(text or "", tags=[], strip=True)
    return sanitized.strip()


def validate_review_message(text: str) -> str:
    """Return the sanitized message, raising ValueError if it is empty or too long."""
    message = sanitize_review_message(text)
    if not message:
        raise ValueError("Review message cannot be empty")
    if len(message) > REVIEW_MAX_LENGTH:
        raise ValueError(f"Review message must be at most {REVIEW_MAX_LENGTH} characters")
    return message
