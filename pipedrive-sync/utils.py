import math
import time
import unicodedata
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

# Small helpers shared by the client, the caches and the search engine.

def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensures a datetime object is timezone-aware, assuming UTC if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt

def parse_pipedrive_time(value: Any) -> Optional[datetime]:
    """Parses Pipedrive timestamps ('2024-03-01T10:00:00Z' or '2024-03-01 10:00:00')."""
    if not value or not isinstance(value, str):
        return None
    try:
        return ensure_timezone_aware(datetime.fromisoformat(value.strip().replace('Z', '+00:00')))
    except ValueError:
        return None

def normalize_search_text(value: Optional[str]) -> str:
    """NFD-decomposes, strips combining marks, lowercases and trims."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()

def to_finite_number(value: Any) -> Optional[float]:
    """Returns the value as a float only when it is a finite number or numeric string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None

def custom_field_value(deal: dict, key: str) -> Any:
    """Reads a custom field from a v2 deal (nested) or a v1 deal (top level)."""
    if not key:
        return None
    custom = deal.get("custom_fields")
    if isinstance(custom, dict) and key in custom:
        value = custom[key]
    else:
        value = deal.get(key)
    # Monetary fields come back as {"value": 10, "currency": "USD"} in v2
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value

def quarter_from_date(dt: datetime) -> int:
    return (dt.month - 1) // 3 + 1

def quarter_range(year: int, quarter: int) -> Tuple[datetime, datetime]:
    """UTC bounds of a calendar quarter, end exclusive."""
    start_month = 3 * (quarter - 1) + 1
    start = datetime(year, start_month, 1, tzinfo=timezone.utc)
    if quarter == 4:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, start_month + 3, 1, tzinfo=timezone.utc)
    return start, end

class ExpiringCache:
    """Tiny per-process result cache; entries vanish `ttl` seconds after being written."""

    def __init__(self, ttl: float, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at > self._clock():
            return value
        del self._entries[key]
        return None

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        # drop entries nobody read back after they expired
        for stale in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[stale]
        self._entries[key] = (now + self.ttl, value)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
