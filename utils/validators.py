"""
File: utils/validators.py
Purpose: Input validation utilities for recipients and message text
"""

import re

# Telegram chat ids are integers (channels/supergroups negative, -100...),
# public channels/groups can also be addressed by @username
_CHAT_ID_RE = re.compile(r'^-?\d+$')
_USERNAME_RE = re.compile(r'^@[A-Za-z][A-Za-z0-9_]{3,31}$')


def parse_recipients(value):
    """
    Normalize a recipient field to an ordered list without duplicates

    Args:
        value: None, a single id, a comma separated string or a list

    Returns:
        list: Recipient strings in first-seen order

    Examples:
        parse_recipients("123, @news") → ["123", "@news"]
        parse_recipients(["123", 123]) → ["123"]
        parse_recipients(None) → []
    """
    if value is None:
        return []

    if isinstance(value, (list, tuple, set)):
        parts = value
    else:
        parts = str(value).split(',')

    recipients = []
    for part in parts:
        part = str(part).strip()
        if part and part not in recipients:
            recipients.append(part)
    return recipients


def is_valid_recipient(recipient: str) -> bool:
    """Check for a numeric chat id or an @username"""
    recipient = str(recipient).strip()
    return bool(_CHAT_ID_RE.match(recipient) or _USERNAME_RE.match(recipient))


def validate_message(text):
    """
    Non-empty check for message text

    Raises:
        ValueError: if the text is empty or whitespace only
    """
    if text is None or not str(text).strip():
        raise ValueError("Message cannot be empty")
    return str(text)
