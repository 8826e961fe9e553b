from typing import Dict, Type

from folio.services.corporate_data.base import CorporateDataProvider
from folio.services.corporate_data.nse_provider import NseCorporateDataProvider

PROVIDERS: Dict[str, Type[CorporateDataProvider]] = {
    "nse": NseCorporateDataProvider,
}


def get_corporate_data_provider(name: str = "nse") -> CorporateDataProvider:
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise ValueError(f"Unknown corporate data provider: {name}")
    return provider_class()
