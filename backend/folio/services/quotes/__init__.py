from typing import Dict, Type

from folio.services.quotes.base import QuoteProvider
from folio.services.quotes.nse_provider import NseQuoteProvider

PROVIDERS: Dict[str, Type[QuoteProvider]] = {
    "nse": NseQuoteProvider,
}


def get_quote_provider(name: str = "nse") -> QuoteProvider:
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise ValueError(f"Unknown quote provider: {name}")
    return provider_class()
