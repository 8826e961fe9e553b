import asyncio
import logging
import re
import time
from datetime import date, datetime
from typing import Any, Optional

import httpx

from folio.core.config import settings

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
}

HOMEPAGE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Upgrade-Insecure-Requests": "1",
}

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_NAMED_MONTH = re.compile(r"^(\d{1,2})[-\s]+([A-Za-z]{3,9})[-\s]+(\d{4})(?:\s.*)?$")
_DAY_FIRST = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


class NseClient:
    """
    JSON client for the NSE website API.

    The API rejects requests that do not look like they come from the quote
    page in a browser. Every call carries browser headers and a Referer, and
    the session cookies NSE hands out on its homepage are fetched first and
    renewed every ``NSE_COOKIE_TTL_SEC``. One ``httpx.AsyncClient`` (and its
    cookie jar) is held until ``aclose``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout_sec: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cookie_ttl_sec: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.NSE_BASE_URL).rstrip("/")
        self.timeout_sec = (
            settings.NSE_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )
        self.cookie_ttl_sec = (
            settings.NSE_COOKIE_TTL_SEC if cookie_ttl_sec is None else cookie_ttl_sec
        )
        self.transport = transport
        self._client: httpx.AsyncClient | None = None
        self._primed_at: float | None = None
        self._prime_lock: asyncio.Lock | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=BROWSER_HEADERS,
                timeout=self.timeout_sec,
                transport=self.transport,
                follow_redirects=True,
            )
        return self._client

    def _cookies_fresh(self) -> bool:
        return self._primed_at is not None and time.monotonic() - self._primed_at < self.cookie_ttl_sec

    async def _prime_cookies(self) -> None:
        """Visit the homepage so the jar holds current session cookies. Failures are logged only."""
        if self._cookies_fresh():
            return
        if self._prime_lock is None:
            self._prime_lock = asyncio.Lock()

        async with self._prime_lock:
            if self._cookies_fresh():
                return
            try:
                response = await self._get_client().get("/", headers=HOMEPAGE_HEADERS)
            except httpx.HTTPError as exc:
                logger.warning("Failed to get NSE session cookies: %s", exc)
                return
            if response.status_code >= 400:
                logger.warning("NSE homepage returned %s; no session cookies", response.status_code)
                return

            self._primed_at = time.monotonic()
            logger.debug("Got NSE session cookies (%s)", len(self._get_client().cookies.jar))

    async def get(self, path: str, params: dict[str, str], referer: str) -> httpx.Response:
        await self._prime_cookies()
        headers = {
            "Referer": f"{self.base_url}{referer}",
            "Origin": self.base_url,
        }
        return await self._get_client().get(path, params=params, headers=headers)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._primed_at = None


def parse_nse_date(value: Any) -> Optional[date]:
    """
    Parse the date formats NSE mixes across endpoints.

    Handles ``04-Nov-2025``, ``04-Nov-2025 13:02:01``, ``30 Sep 2025``,
    ``31-03-2025`` and ``2025-03-31``. Returns None for anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    match = _NAMED_MONTH.match(text)
    if match:
        month = _MONTHS.get(match.group(2)[:3].lower())
        if month:
            return _safe_date(int(match.group(3)), month, int(match.group(1)))

    head = text.split(" ")[0]
    match = _DAY_FIRST.match(head)
    if match:
        return _safe_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))

    match = _ISO.match(head[:10])
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    return None


def parse_number(value: Any) -> float:
    """Parse NSE numbers such as ``"1,234.50"``; unparseable values become 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value)
        try:
            return float(cleaned)
        except ValueError:
            return 0.0
    return 0.0


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None
