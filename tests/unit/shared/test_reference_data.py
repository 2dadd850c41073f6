from decimal import Decimal

from src.core.validation import OrderInstruction
from src.infrastructure.order_book import InMemoryOrderBook
from src.infrastructure.reference_data import build_market_value_source, build_product_catalog
from src.infrastructure.reference_data.env_json import parse_market_values, parse_product_catalog


def test_product_catalog_json_parsing_skips_invalid_entries():
    products = parse_product_catalog(
        '{"MF_EQ_001": {"min_investment": "5000", "max_investment": "1000000"},'
        ' "MF_BAD": {"min_investment": "not-a-number"},'
        ' "MF_SHAPE": "oops"}'
    )

    assert [product.product_id for product in products] == ["MF_EQ_001"]
    assert products[0].max_investment == Decimal("1000000")
    assert parse_product_catalog("not json") == []
    assert parse_product_catalog(None) == []


def test_market_value_json_is_keyed_by_client_and_product():
    values = build_market_value_source(
        '{"client_001": {"MF_DEBT_002": "200000", "MF_BAD": "x"}, "client_002": []}'
    )

    assert values.get_market_value("client_001", "MF_DEBT_002") == Decimal("200000")
    assert values.get_market_value("client_001", "MF_BAD") is None
    assert values.get_market_value("client_002", "MF_DEBT_002") is None
    assert parse_market_values("[]") == {}


def test_catalog_supports_upsert_and_removal():
    catalog = build_product_catalog('{"MF_EQ_001": {"min_investment": "5000"}}')

    assert catalog.get_product("MF_EQ_001").max_investment is None
    assert catalog.remove_product("MF_EQ_001") is True
    assert catalog.remove_product("MF_EQ_001") is False
    assert catalog.list_products() == []


def test_order_book_assigns_ids_and_honours_queued_rejections():
    order_book = InMemoryOrderBook()
    instruction = OrderInstruction(
        product_id="MF_EQ_001", amount=Decimal("10000"), transaction_type="Purchase"
    )
    order_book.queue_rejection("SIP-1", "Insufficient funds")

    rejected = order_book.submit_order(instruction, client_id="client_001", plan_id="SIP-1")
    accepted = order_book.submit_order(instruction, client_id="client_001", plan_id="SIP-1")

    assert rejected.success is False
    assert rejected.reason == "Insufficient funds"
    assert accepted.success is True
    assert accepted.order_id == "ORD-000001"
    assert [order.plan_id for order in order_book.list_orders()] == ["SIP-1"]


def test_order_book_returns_the_original_order_for_a_repeated_reference():
    order_book = InMemoryOrderBook()
    instruction = OrderInstruction(
        product_id="MF_EQ_001", amount=Decimal("10000"), transaction_type="Purchase"
    )

    first = order_book.submit_order(
        instruction, client_id="client_001", plan_id="SIP-1", order_reference="SIP-1:2026-11-05"
    )
    repeat = order_book.submit_order(
        instruction, client_id="client_001", plan_id="SIP-1", order_reference="SIP-1:2026-11-05"
    )
    next_month = order_book.submit_order(
        instruction, client_id="client_001", plan_id="SIP-1", order_reference="SIP-1:2026-12-05"
    )

    assert repeat.success is True
    assert repeat.order_id == first.order_id == "ORD-000001"
    assert next_month.order_id == "ORD-000002"
    assert len(order_book.list_orders(plan_id="SIP-1")) == 2
