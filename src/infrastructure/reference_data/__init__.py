from src.infrastructure.reference_data.env_json import (
    build_market_value_source,
    build_product_catalog,
)
from src.infrastructure.reference_data.in_memory import (
    InMemoryMarketValueSource,
    InMemoryProductCatalog,
)

__all__ = [
    "InMemoryMarketValueSource",
    "InMemoryProductCatalog",
    "build_market_value_source",
    "build_product_catalog",
]
