from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass(frozen=True)
class ClickEvent:
    timestamp: datetime
    referrer: str = "direct"
    geo: str = "unknown"


@dataclass
class LinkRecord:
    shortcode: str
    original_url: str
    created_at: datetime
    expires_at: datetime
    # Append-only, chronological
    clicks: List[ClickEvent] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        # The expiry instant itself is still valid
        return now > self.expires_at


@dataclass(frozen=True)
class CreatedLink:
    shortcode: str
    expires_at: datetime


@dataclass(frozen=True)
class LinkStats:
    original_url: str
    created_at: datetime
    expires_at: datetime
    total_clicks: int
    clicks: tuple
