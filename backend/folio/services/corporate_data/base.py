from abc import ABC, abstractmethod
from typing import Any


class CorporateDataProvider(ABC):
    """Abstract base class for corporate data providers."""

    @abstractmethod
    async def fetch_corporate_data(self, symbol: str) -> dict[str, list[dict[str, Any]]]:
        """
        Fetch announcements, corporate actions, board meetings, financial
        results and shareholding patterns for a symbol.

        Keys that the provider has no data for may be missing. Raises on
        transport or HTTP errors.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
