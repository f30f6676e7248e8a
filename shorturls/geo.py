import ipaddress
import logging
from functools import lru_cache
from typing import Callable

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

GeoLookup = Callable[[str], str]

def normalize_ip(ip: str) -> str:
    """Strip the IPv4-mapped IPv6 prefix that dual-stack sockets report."""
    if ip and ip.lower().startswith("::ffff:"):
        return ip[len("::ffff:"):]
    return ip or ""

def is_public_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_global

def build_geo_lookup(settings: Settings) -> GeoLookup:
    """Return an IP -> country code function, memoized per address."""
    if not settings.GEO_LOOKUP_ENABLED:
        return lambda ip: UNKNOWN

    @lru_cache(maxsize=10000)
    def _cached(ip: str) -> str:
        # Raising keeps failures out of the cache so the next click retries
        try:
            with httpx.Client(timeout=settings.GEO_TIMEOUT_SECONDS) as client:
                response = client.get(
                    settings.GEO_API_URL.format(ip=ip),
                    params={"fields": "status,countryCode"},
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LookupError(f"Geo lookup failed for {ip}: {e}") from e
        if data.get("status") == "success" and data.get("countryCode"):
            return data["countryCode"]
        raise LookupError(f"No country for {ip}: {data.get('message', data.get('status'))}")

    def lookup(ip: str) -> str:
        ip = normalize_ip(ip)
        if not is_public_ip(ip):
            return UNKNOWN
        try:
            return _cached(ip)
        except LookupError as e:
            logger.warning(str(e))
            return UNKNOWN

    return lookup
