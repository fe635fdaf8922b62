# coupon_code.py
# Donation coupon codes: COUPON-XXXX-XXXX-XXXX with X in 0-9A-F.

import re
import secrets
from typing import Optional

CODE_PREFIX = "COUPON"
CODE_ALPHABET = "0123456789ABCDEF"
GROUPS = 3
GROUP_SIZE = 4

CODE_PATTERN = re.compile(r"^COUPON(-[0-9A-F]{4}){3}$")


def generate_coupon_code() -> str:
    groups = [
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(GROUP_SIZE))
        for _ in range(GROUPS)
    ]
    return "-".join([CODE_PREFIX] + groups)


def normalize_code(code: Optional[str]) -> str:
    """Canonical form used for storage and lookups: trimmed, upper-case."""
    return (code or "").strip().upper()


def is_well_formed(code: str) -> bool:
    return bool(CODE_PATTERN.match(code))
