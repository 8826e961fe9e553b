"""
Time helpers.

Stored timestamps are naive UTC. Calendar comparisons ("is this corporate
action still upcoming?") use the market's local day.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from folio.core.config import settings


def local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.TIMEZONE))


def local_today() -> date:
    return local_now().date()
