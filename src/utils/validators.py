"""Input validation for whitelist entries."""

import ipaddress
from typing import Optional

from const import COMMENT_MAX_LEN, IP_OR_CIDR_MAX_LEN


def validate_ip_or_cidr(value: str) -> str:
    """
    Validate an IPv4/IPv6 address or CIDR range.

    Host bits in a CIDR are allowed (``192.168.1.5/24``) because fail2ban
    accepts them in ignoreip.

    Args:
        value: Raw user input.

    Returns:
        The stripped value.

    Raises:
        ValueError: If the value is not a valid address or range.
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("IP address or CIDR range is required")
    if len(value) > IP_OR_CIDR_MAX_LEN:
        raise ValueError(f"IP address or CIDR range must be at most {IP_OR_CIDR_MAX_LEN} characters")
    if any(ch.isspace() for ch in value):
        raise ValueError("IP address or CIDR range must not contain whitespace")

    try:
        if "/" in value:
            ipaddress.ip_network(value, strict=False)
        else:
            ipaddress.ip_address(value)
    except ValueError:
        raise ValueError(
            f"'{value}' must be a valid IPv4/IPv6 address or CIDR range "
            "(e.g., 192.168.1.100 or 192.168.1.0/24)"
        ) from None
    return value


def is_valid_ip(value: str) -> bool:
    """True for a single IPv4/IPv6 address (no CIDR)."""
    try:
        ipaddress.ip_address((value or "").strip())
        return True
    except ValueError:
        return False


def validate_comment(comment: Optional[str]) -> Optional[str]:
    """Strip a comment, returning None for blank and rejecting overlong text."""
    if comment is None:
        return None
    comment = comment.strip()
    if not comment:
        return None
    if len(comment) > COMMENT_MAX_LEN:
        raise ValueError(f"Comment must be at most {COMMENT_MAX_LEN} characters")
    return comment
