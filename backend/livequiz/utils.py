import random
from datetime import datetime, timezone
from typing import Collection

SESSION_ID_MAX = 999_999
DEFAULT_ID_MAX = 999_999_999


def now_iso() -> str:
    # millisecond precision with a Z suffix, e.g. 2024-05-01T09:30:00.125Z
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id(existing: Collection[str], max_value: int = DEFAULT_ID_MAX) -> str:
    """Draw a random id in ``[max_value // 10, max_value]`` not already in ``existing``."""
    low = max_value // 10
    candidate = str(random.randint(low, max_value))
    while candidate in existing:
        candidate = str(random.randint(low, max_value))
    return candidate
