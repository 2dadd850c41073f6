from decimal import Decimal
from threading import Lock
from typing import Iterable, Mapping, Optional

from src.core.validation.models import ProductReference


class InMemoryProductCatalog:
    def __init__(self, products: Iterable[ProductReference] = ()) -> None:
        self._lock = Lock()
        self._products: dict[str, ProductReference] = {
            product.product_id: product for product in products
        }

    def get_product(self, product_id: str) -> Optional[ProductReference]:
        with self._lock:
            return self._products.get(product_id)

    def upsert_product(self, product: ProductReference) -> None:
        with self._lock:
            self._products[product.product_id] = product

    def remove_product(self, product_id: str) -> bool:
        with self._lock:
            return self._products.pop(product_id, None) is not None

    def list_products(self) -> list[ProductReference]:
        with self._lock:
            return sorted(self._products.values(), key=lambda item: item.product_id)


class InMemoryMarketValueSource:
    def __init__(self, values: Optional[Mapping[str, Mapping[str, Decimal]]] = None) -> None:
        self._lock = Lock()
        self._values: dict[tuple[str, str], Decimal] = {}
        for client_id, holdings in (values or {}).items():
            for product_id, market_value in holdings.items():
                self._values[(client_id, product_id)] = market_value

    def get_market_value(self, client_id: str, product_id: str) -> Optional[Decimal]:
        with self._lock:
            return self._values.get((client_id, product_id))

    def set_market_value(self, client_id: str, product_id: str, market_value: Decimal) -> None:
        with self._lock:
            self._values[(client_id, product_id)] = market_value
