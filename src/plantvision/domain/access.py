"""Sender access control by dialing prefix."""

from typing import Iterable


def is_blocked_country(sender_id: str, blocked_codes: Iterable[str]) -> bool:
    """True if the sender's number starts with one of the blocked country codes.

    WhatsApp sender ids are E.164 digits without the leading ``+``.
    """
    number = sender_id.lstrip("+")
    return any(code and number.startswith(code) for code in blocked_codes)
