import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import ValidationError

from src.core.validation.models import ProductReference
from src.infrastructure.reference_data.in_memory import (
    InMemoryMarketValueSource,
    InMemoryProductCatalog,
)

logger = logging.getLogger(__name__)


def parse_product_catalog(catalog_json: Optional[str]) -> list[ProductReference]:
    """Parse ``{"<product_id>": {"min_investment": ..., "max_investment": ...}}``."""
    raw = _load_object(catalog_json, source="PRODUCT_CATALOG_JSON")
    products: list[ProductReference] = []
    for product_id, definition in raw.items():
        if not isinstance(definition, dict) or not str(product_id).strip():
            continue
        payload = {
            "product_id": str(product_id).strip(),
            "min_investment": definition.get("min_investment"),
            "max_investment": definition.get("max_investment"),
        }
        try:
            products.append(ProductReference.model_validate(payload))
        except ValidationError:
            logger.warning(
                "product catalog entry ignored",
                extra={"extra_fields": {"product_id": payload["product_id"]}},
            )
    return products


def parse_market_values(market_values_json: Optional[str]) -> dict[str, dict[str, Decimal]]:
    """Parse ``{"<client_id>": {"<product_id>": "<market value>"}}``."""
    raw = _load_object(market_values_json, source="MARKET_VALUES_JSON")
    values: dict[str, dict[str, Decimal]] = {}
    for client_id, holdings in raw.items():
        if not isinstance(holdings, dict):
            continue
        for product_id, market_value in holdings.items():
            try:
                parsed = Decimal(str(market_value))
            except InvalidOperation:
                continue
            values.setdefault(str(client_id), {})[str(product_id)] = parsed
    return values


def build_product_catalog(catalog_json: Optional[str]) -> InMemoryProductCatalog:
    return InMemoryProductCatalog(parse_product_catalog(catalog_json))


def build_market_value_source(market_values_json: Optional[str]) -> InMemoryMarketValueSource:
    return InMemoryMarketValueSource(parse_market_values(market_values_json))


def _load_object(payload: Optional[str], *, source: str) -> dict:
    normalized_json = (payload or "").strip()
    if not normalized_json:
        return {}
    try:
        raw = json.loads(normalized_json)
    except json.JSONDecodeError:
        logger.warning("reference data json invalid", extra={"extra_fields": {"source": source}})
        return {}
    if not isinstance(raw, dict):
        return {}
    return raw
