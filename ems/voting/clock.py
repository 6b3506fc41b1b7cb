# ems/voting/clock.py

# Clock sources used to evaluate the election window. The window is never
# checked against the requesting client's clock; a clock that cannot answer
# raises TimeSourceUnavailable and the vote is denied.

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import ntplib
import requests

logger = logging.getLogger(__name__)


class TimeSourceUnavailable(Exception):
    """Raised when a clock source cannot produce the current time."""


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClockSource:
    name = "clock"

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(ClockSource):
    name = "system"

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(ClockSource):
    """Clock pinned to an instant; ``set``/``advance`` move it."""

    name = "fixed"

    def __init__(self, instant: datetime):
        self.instant = as_utc(instant)

    def now(self) -> datetime:
        return self.instant

    def set(self, instant: datetime):
        self.instant = as_utc(instant)

    def advance(self, **delta):
        self.instant = self.instant + timedelta(**delta)


class NtpClock(ClockSource):
    name = "ntp"

    def __init__(self, servers: Iterable[str], timeout: float = 3, client: Optional[ntplib.NTPClient] = None):
        self.servers = list(servers)
        self.timeout = timeout
        self.client = client or ntplib.NTPClient()

    def now(self) -> datetime:
        for server in self.servers:
            try:
                response = self.client.request(server, version=3, timeout=self.timeout)
            except (ntplib.NTPException, OSError) as e:
                logger.warning("NTP server %s failed: %s", server, e)
                continue
            return datetime.fromtimestamp(response.tx_time, tz=timezone.utc)
        raise TimeSourceUnavailable(f"no NTP server answered ({', '.join(self.servers) or 'none configured'})")


class HttpTimeApiClock(ClockSource):
    """Reads ``utc_datetime`` from a worldtimeapi-style JSON endpoint."""

    name = "http"

    def __init__(self, url: str, timeout: float = 3, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def now(self) -> datetime:
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            raw = response.json()["utc_datetime"]
            return as_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except requests.RequestException as e:
            logger.warning("Time API request to %s failed: %s", self.url, e)
            raise TimeSourceUnavailable(str(e)) from e
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Time API %s returned an unusable payload: %s", self.url, e)
            raise TimeSourceUnavailable(f"malformed time API response: {e}") from e


def build_clock(config) -> ClockSource:
    kind = str(config.get('CLOCK_SOURCE', 'ntp')).lower()
    timeout = float(config.get('TIME_SOURCE_TIMEOUT', 3))
    if kind == 'system':
        return SystemClock()
    if kind == 'ntp':
        return NtpClock(config.get('NTP_SERVERS', []), timeout=timeout)
    if kind == 'http':
        return HttpTimeApiClock(config['TIME_API_URL'], timeout=timeout)
    raise ValueError(f"Unknown CLOCK_SOURCE: {kind}")
