"""
Order Number Generator

Human-readable order numbers of the form ORD-YYYYMMDD-HHMMSS-XXXXX, where
XXXXX is five random uppercase base-36 characters.
"""
import re
import secrets
import string
from datetime import datetime, timezone
from typing import Optional, Dict, Any

ORDER_ID_PATTERN = re.compile(r"^ORD-(\d{8})-(\d{6})-([A-Z0-9]{5})$")
_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_id(now: Optional[datetime] = None) -> str:
    """
    Generate a new order number.

    Args:
        now: Timestamp to embed (UTC now if omitted)

    Returns:
        Order number string
    """
    now = now or datetime.now(timezone.utc)
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"ORD-{now:%Y%m%d}-{now:%H%M%S}-{random_part}"


def validate_order_id(order_id: str) -> bool:
    return bool(order_id) and ORDER_ID_PATTERN.fullmatch(order_id) is not None


def parse_order_id(order_id: str) -> Optional[Dict[str, Any]]:
    """
    Split an order number into its parts.

    Returns:
        {"date", "time", "random", "created_at"} or None if the string is
        not a well-formed order number
    """
    match = ORDER_ID_PATTERN.fullmatch(order_id or "")
    if not match:
        return None
    date_part, time_part, random_part = match.groups()
    try:
        created_at = datetime.strptime(f"{date_part}{time_part}", "%Y%m%d%H%M%S")
    except ValueError:
        return None
    return {
        "date": date_part,
        "time": time_part,
        "random": random_part,
        "created_at": created_at,
    }
