"""Unit tests for container category profit."""

from __future__ import annotations

from decimal import Decimal

from olive_press_erp import profit
from olive_press_erp.constants import ContainerFamily


def test_tin_profit_uses_weighted_average_cost(make_purchase, make_transaction):
    """Four 16 L tins sold at 100 against an 80 unit cost earn 80."""

    purchases = [make_purchase(quantities={"s16": 10, "s10": 0, "s5": 0}, unit_price=80)]
    transactions = [make_transaction(tin_counts={"s16": 4}, tin_prices={"s16": 100})]

    result = profit.calculate_tin_profit(purchases, transactions)
    variant = result.variants["s16"]

    assert variant.sold == Decimal("4")
    assert variant.revenue == Decimal("400")
    assert variant.avg_unit_cost == Decimal("80")
    assert variant.cogs == Decimal("320")
    assert variant.net_profit == Decimal("80")
    assert result.total_net_profit == Decimal("80")
    assert result.total_purchase_cost == Decimal("800")
    assert result.purchase_margin == Decimal("-400")


def test_profit_uses_all_purchases_regardless_of_sale_date(make_purchase, make_transaction):
    purchases = [
        make_purchase(ContainerFamily.PLASTIC, quantities={"s5": 10}, unit_price=10, date="2024-01-01"),
        make_purchase(ContainerFamily.PLASTIC, quantities={"s5": 10}, unit_price=20, date="2024-12-01"),
    ]
    transactions = [
        make_transaction(date="2024-06-01", plastic_counts={"s5": 2}, plastic_prices={"s5": 25}),
    ]

    result = profit.calculate_plastic_profit(purchases, transactions)

    assert result.variants["s5"].avg_unit_cost == Decimal("15")
    assert result.variants["s5"].net_profit == Decimal("20")


def test_profit_is_order_independent(make_purchase, make_transaction):
    purchases = [
        make_purchase(quantities={"s10": 3}, unit_price="11.1"),
        make_purchase(quantities={"s10": 4}, unit_price="13.7"),
        make_purchase(quantities={"s5": 9}, unit_price="6.4"),
    ]
    transactions = [
        make_transaction(tin_counts={"s10": 2, "s5": 3}, tin_prices={"s10": 20, "s5": 9}),
        make_transaction(tin_counts={"s10": 1}, tin_prices={"s10": 21}),
    ]

    forward = profit.calculate_tin_profit(purchases, transactions)
    backward = profit.calculate_tin_profit(purchases[::-1], transactions[::-1])

    assert forward == backward


def test_profit_without_sales_is_zero(make_purchase):
    result = profit.calculate_tin_profit([make_purchase(quantities={"s16": 5}, unit_price=50)], [])

    assert result.total_sold == Decimal("0")
    assert result.total_net_profit == Decimal("0")
    assert result.purchase_margin == Decimal("-250")
