"""In-memory registry of short links and their click history."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from .errors import (
    InvalidLogEvent,
    InvalidShortcodeFormat,
    InvalidURL,
    ShortcodeCollision,
    ShortcodeExpired,
    ShortcodeNotFound,
    ShortcodeSpaceExhausted,
    ShortLinkError,
    UnexpectedFailure,
)
from .events import EventLogger
from .geo import UNKNOWN, GeoLookup
from .models import ClickEvent, CreatedLink, LinkRecord, LinkStats
from .observability import (
    REDIRECT_EXPIRED_TOTAL,
    REDIRECT_NOT_FOUND_TOTAL,
    REDIRECT_TOTAL,
    SHORTURLS_CREATED_TOTAL,
)
from .utils import generate_random_code, is_valid_shortcode, is_web_url

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_MINUTES = 30


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_validity(validity, default: int = DEFAULT_VALIDITY_MINUTES):
    # bool is an int subclass but never a meaningful duration
    if not isinstance(validity, (int, float)) or isinstance(validity, bool) or not validity > 0:
        return default
    try:
        window = timedelta(minutes=validity)
    except OverflowError:
        return default
    # Sub-microsecond windows round to zero and would expire at creation
    if window <= timedelta(0):
        return default
    return validity


class ShortLinkRegistry:
    def __init__(
        self,
        events: Optional[EventLogger] = None,
        geo_lookup: Optional[GeoLookup] = None,
        clock: Callable[[], datetime] = utcnow,
        code_length: int = 6,
        max_attempts: int = 100_000,
        default_validity: int = DEFAULT_VALIDITY_MINUTES,
    ):
        self._links: Dict[str, LinkRecord] = {}
        self._lock = threading.Lock()
        self._events = events
        self._geo_lookup = geo_lookup or (lambda ip: UNKNOWN)
        self._clock = clock
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.default_validity = default_validity

    def __len__(self) -> int:
        return len(self._links)

    def __contains__(self, shortcode) -> bool:
        return shortcode in self._links

    def _emit(self, level: str, message: str):
        if self._events is None:
            return
        try:
            self._events.log("backend", level, "handler", message)
        except InvalidLogEvent as e:
            logger.warning(f"Dropped invalid diagnostic event: {e}")

    def _generate_code(self) -> str:
        # Caller holds the lock
        for _ in range(self.max_attempts):
            code = generate_random_code(self.code_length)
            if code not in self._links:
                return code
        raise ShortcodeSpaceExhausted(
            f"Could not generate a unique shortcode after {self.max_attempts} attempts"
        )

    def create(self, url, validity_minutes=None, requested_code=None) -> CreatedLink:
        try:
            return self._create(url, validity_minutes, requested_code)
        except ShortLinkError:
            raise
        except Exception as e:
            logger.exception("Unexpected error in short URL creation")
            self._emit("fatal", f"Unexpected error in short URL creation: {e}")
            raise UnexpectedFailure() from e

    def _create(self, url, validity_minutes, requested_code) -> CreatedLink:
        if not url or not is_web_url(url):
            self._emit("error", "Invalid or missing URL in request body.")
            raise InvalidURL()

        validity = resolve_validity(validity_minutes, self.default_validity)

        if requested_code and not is_valid_shortcode(requested_code):
            self._emit("error", f"Invalid shortcode format provided: {requested_code}")
            raise InvalidShortcodeFormat()

        try:
            record = self._insert(url, validity, requested_code)
        except ShortcodeCollision:
            self._emit("warn", f"Shortcode collision attempt: {requested_code}")
            raise
        except ShortcodeSpaceExhausted as e:
            self._emit("fatal", str(e))
            raise

        SHORTURLS_CREATED_TOTAL.inc()
        self._emit("info", f"Short URL created: {record.shortcode} for URL: {url}")
        return CreatedLink(shortcode=record.shortcode, expires_at=record.expires_at)

    def _insert(self, url: str, validity, requested_code) -> LinkRecord:
        # Existence check and insertion must not interleave with another create
        with self._lock:
            if requested_code:
                if requested_code in self._links:
                    raise ShortcodeCollision()
                shortcode = requested_code
            else:
                shortcode = self._generate_code()

            created_at = self._clock()
            record = LinkRecord(
                shortcode=shortcode,
                original_url=url,
                created_at=created_at,
                expires_at=created_at + timedelta(minutes=validity),
            )
            self._links[shortcode] = record
            return record

    def resolve(self, shortcode: str, referrer: Optional[str] = None, client_ip: Optional[str] = None) -> str:
        """Return the target URL of a live shortcode and record the click."""
        record = self._links.get(shortcode)
        if record is None:
            REDIRECT_NOT_FOUND_TOTAL.inc()
            self._emit("error", f"Attempted redirect on non-existent shortcode: {shortcode}")
            raise ShortcodeNotFound()

        if record.is_expired(self._clock()):
            self._expired(shortcode)

        geo = self._lookup_geo(client_ip)

        # Timestamp under the lock so append order matches click time
        with self._lock:
            now = self._clock()
            expired = record.is_expired(now)
            if not expired:
                record.clicks.append(ClickEvent(timestamp=now, referrer=referrer or "direct", geo=geo))
        if expired:
            self._expired(shortcode)

        REDIRECT_TOTAL.inc()
        self._emit("info", f"Redirecting shortcode: {shortcode} to URL: {record.original_url}")
        return record.original_url

    def _expired(self, shortcode: str):
        REDIRECT_EXPIRED_TOTAL.inc()
        self._emit("warn", f"Attempted redirect on expired shortcode: {shortcode}")
        raise ShortcodeExpired()

    def _lookup_geo(self, client_ip: Optional[str]) -> str:
        if not client_ip:
            return UNKNOWN
        try:
            return self._geo_lookup(client_ip) or UNKNOWN
        except Exception as e:
            logger.warning(f"Geo lookup raised for {client_ip}: {e}")
            return UNKNOWN

    def stats(self, shortcode: str) -> LinkStats:
        record = self._links.get(shortcode)
        if record is None:
            raise ShortcodeNotFound("Shortcode does not exist.")

        with self._lock:
            clicks = tuple(record.clicks)

        return LinkStats(
            original_url=record.original_url,
            created_at=record.created_at,
            expires_at=record.expires_at,
            total_clicks=len(clicks),
            clicks=clicks,
        )
