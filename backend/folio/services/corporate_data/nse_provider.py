import logging
from datetime import date
from typing import Any, Optional

import httpx

from folio.services.corporate_data.base import CorporateDataProvider
from folio.services.nse_client import NseClient, parse_nse_date, parse_number

logger = logging.getLogger(__name__)

MAX_ENTRIES = 20
MAX_SHAREHOLDING_PERIODS = 10


class NseCorporateDataProvider(CorporateDataProvider):
    """Corporate data from the NSE ``top-corp-info`` endpoint."""

    path = "/api/top-corp-info"

    def __init__(self, client: NseClient | None = None) -> None:
        self.client = client or NseClient()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch_corporate_data(self, symbol: str) -> dict[str, list[dict[str, Any]]]:
        try:
            response = await self.client.get(
                self.path,
                params={"symbol": symbol, "market": "equities", "series": "EQ"},
                referer=f"/get-quotes/equity?symbol={symbol}",
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                logger.info("Corporate data not available for %s", symbol)
            logger.error("NSE corporate data request failed for %s: %s", symbol, exc)
            raise
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("NSE corporate data request failed for %s: %s", symbol, exc)
            raise

        if not isinstance(data, dict):
            return {}

        result: dict[str, list[dict[str, Any]]] = {}

        announcements = _section(data, "latest_announcements")
        if announcements is not None:
            result["announcements"] = _map_announcements(announcements)

        actions = _section(data, "corporate_actions")
        if actions is not None:
            result["corporateActions"] = _map_corporate_actions(actions)

        results = _section(data, "financial_results")
        if results is not None:
            result["financialResults"] = _map_financial_results(results)

        patterns = (data.get("shareholdings_patterns") or {}).get("data")
        if isinstance(patterns, dict):
            result["shareholdingPatterns"] = _map_shareholding_patterns(patterns)

        # The endpoint spells it "borad_meeting"; accept the correct spelling too
        meetings = _map_board_meetings(_section(data, "borad_meeting") or [])
        if not meetings:
            meetings = _map_board_meetings(_section(data, "board_meeting") or [])
        if meetings:
            result["boardMeetings"] = meetings

        return result


def _section(data: dict[str, Any], key: str) -> Optional[list[Any]]:
    section = data.get(key)
    if not isinstance(section, dict):
        return None
    items = section.get("data")
    return items if isinstance(items, list) else None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _map_announcements(items: list[Any]) -> list[dict[str, Any]]:
    mapped = []
    for item in items:
        if not isinstance(item, dict) or not item.get("subject"):
            continue
        day = parse_nse_date(item.get("broadcastdate"))
        if day is None:
            continue
        mapped.append({"subject": item["subject"], "date": day.isoformat(), "description": None})
    return mapped[:MAX_ENTRIES]


def classify_action(purpose: str) -> str:
    """Derive the action type from an NSE purpose line."""
    text = purpose.lower()
    if "dividend" in text:
        return "Dividend"
    if "bonus" in text:
        return "Bonus"
    if "split" in text:
        return "Split"
    if "rights" in text:
        return "Rights"
    if "agm" in text or "annual general meeting" in text:
        return "AGM"
    return "Other"


def _map_corporate_actions(items: list[Any]) -> list[dict[str, Any]]:
    mapped = []
    for item in items:
        if not isinstance(item, dict) or not item.get("purpose"):
            continue
        ex_date = parse_nse_date(item.get("exdate"))
        if ex_date is None:
            continue
        purpose = item["purpose"]
        mapped.append(
            {
                "subject": purpose,
                "date": ex_date.isoformat(),
                "exDate": ex_date.isoformat(),
                "recordDate": _iso(parse_nse_date(item.get("recdate"))),
                "description": purpose,
                "actionType": classify_action(purpose),
            }
        )
    return mapped


def _map_board_meetings(items: list[Any]) -> list[dict[str, Any]]:
    mapped = []
    for item in items:
        if not isinstance(item, dict) or not item.get("purpose"):
            continue
        meeting_date = parse_nse_date(item.get("meetingdate"))
        if meeting_date is None:
            continue
        mapped.append(
            {
                "subject": item["purpose"],
                "date": meeting_date.isoformat(),
                "purpose": item["purpose"],
                "outcome": None,
            }
        )
    return mapped


def _first(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if item.get(key):
            return item[key]
    return "0"


def _map_financial_results(items: list[Any]) -> list[dict[str, Any]]:
    mapped = []
    for item in items:
        if not isinstance(item, dict):
            continue
        quarter_ended = parse_nse_date(item.get("to_date"))
        if quarter_ended is None:
            continue

        total_income = parse_number(_first(item, "income", "revenue"))
        net_profit = parse_number(_first(item, "proLossAftTax", "profitAfterTax"))
        margin = None
        if total_income > 0 and net_profit != 0:
            margin = net_profit / total_income * 100

        mapped.append(
            {
                "quarterEnded": quarter_ended.isoformat(),
                "totalIncome": total_income,
                "netProfitLoss": net_profit,
                "earningsPerShare": parse_number(_first(item, "reDilEPS", "eps", "EPS")),
                "revenue": total_income,
                "operatingProfit": parse_number(
                    _first(item, "reProLossBefTax", "profitBeforeTax")
                ),
                "netProfitMargin": margin,
            }
        )
    return mapped[:MAX_ENTRIES]


def _map_shareholding_patterns(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Periods arrive as ``{"31-Mar-2025": [{"Promoter & Promoter Group": "50.1"}, ...]}``."""
    patterns = []
    for period, items in data.items():
        if not isinstance(items, list):
            continue
        period_ended = parse_nse_date(period)
        if period_ended is None:
            continue

        pattern: dict[str, Any] = {
            "periodEnded": period_ended.isoformat(),
            "promoterAndPromoterGroup": 0.0,
            "public": 0.0,
            "sharesHeldByEmployeeTrusts": 0.0,
            "total": 100.0,
        }
        for item in items:
            if not isinstance(item, dict) or not item:
                continue
            key = next(iter(item))
            value = parse_number(item[key] or "0")
            lowered = key.lower()
            if "promoter" in lowered:
                pattern["promoterAndPromoterGroup"] = value
            elif "public" in lowered:
                pattern["public"] = value
            elif "employee" in lowered:
                pattern["sharesHeldByEmployeeTrusts"] = value
            elif "total" in lowered:
                pattern["total"] = value
            elif "fii" in lowered or "foreign" in lowered:
                pattern["foreignInstitutionalInvestors"] = value
            elif "dii" in lowered or "domestic" in lowered:
                pattern["domesticInstitutionalInvestors"] = value
            else:
                pattern["other"] = pattern.get("other", 0.0) + value
        patterns.append(pattern)

    patterns.sort(key=lambda p: p["periodEnded"], reverse=True)
    return patterns[:MAX_SHAREHOLDING_PERIODS]
