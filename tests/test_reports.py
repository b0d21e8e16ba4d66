"""Unit tests for the plain-text backup, receipt and screen renderers."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from olive_press_erp import data_manager, reports
from olive_press_erp.constants import INTERIM_COLLECTION_DESCRIPTION, ContainerFamily

GENERATED_AT = datetime(2024, 11, 30, 18, 45, 10)


@pytest.fixture
def collections(make_purchase, make_transaction) -> data_manager.Collections:
    return data_manager.Collections(
        customers=(
            data_manager.CustomerRow("C1", "Ali"),
            data_manager.CustomerRow("C2", "Veli"),
        ),
        transactions=(
            make_transaction(
                customer_id="C1",
                olive_kg=150,
                oil_litre=30,
                price_per_kg=3,
                tin_counts={"s16": 4},
                tin_prices={"s16": 100},
                total_cost=850,
                payment_received=500,
                description="First pressing",
            ),
            make_transaction(
                customer_id="C2",
                customer_name="Veli",
                olive_kg=100,
                price_per_kg=3,
                total_cost=300,
                payment_received=300,
            ),
        ),
        worker_expenses=(data_manager.WorkerExpenseRow("W1", "2024-11-01", "Hasan", Decimal("5"), Decimal("1500")),),
        tin_purchases=(make_purchase(quantities={"s16": 10}, unit_price=80),),
        oil_purchases=(
            data_manager.OilPurchaseRow("OP1", "2024-11-02", "Supplier", Decimal("3"), Decimal("2000"), Decimal("6000")),
        ),
    )


def test_render_backup_orders_sections(collections):
    text = reports.render_backup(collections, factory_name="Test Press", generated_at=GENERATED_AT, currency="TL")

    titles = [line for line in text.splitlines() if line.startswith("--- ")]
    assert [title.split(" (")[0].strip("- ") for title in titles] == [
        "FACTORY SUMMARY",
        "PRESSING REVENUE",
        "OIL TRADING SUMMARY",
        "OIL PURCHASES",
        "OIL SALES",
        "WORKER EXPENSES",
        "FACTORY OVERHEAD",
        "TIN PURCHASES",
        "PLASTIC PURCHASES",
        "POMACE REVENUES",
        "TIN/PLASTIC STOCK",
        "CUSTOMER RECORDS",
    ]
    assert text.startswith("TEST PRESS - BACKUP FILE\nGenerated: 30.11.2024 18:45:10")
    assert text.endswith("\n")


def test_render_backup_reports_consolidated_figures(collections):
    text = reports.render_backup(collections, factory_name="Test Press", generated_at=GENERATED_AT, currency="TL")

    # 1150 billed + 480 remaining tins against 1500 wages + 800 tins
    assert "Total income: 1.630TL" in text
    assert "Total expense: 2.300TL" in text
    assert "Net profit/loss: -670TL" in text
    assert "Remaining tin stock value: 480TL" in text
    assert "  16 L: 6 pcs" in text
    assert "OIL PURCHASES (1 records)" in text


def test_render_backup_lists_only_debtors(collections):
    text = reports.render_backup(collections, factory_name="Test Press", generated_at=GENERATED_AT, currency="TL")

    assert "*** Customer: Ali ***" in text
    assert "*** Customer: Veli ***" not in text
    assert "Description: First pressing (150 kg olives), Amount: 850TL, Received: 500TL, Remaining: 350TL" in text


def test_render_non_debtor_backup_lists_settled_customers(collections):
    text = reports.render_non_debtor_backup(collections, factory_name="Test Press", generated_at=GENERATED_AT)

    assert "*** Customer: Veli ***" in text
    assert "*** Customer: Ali ***" not in text


def test_backups_list_customers_in_stored_order(make_transaction):
    collections = data_manager.Collections(
        customers=(
            data_manager.CustomerRow("C2", "Veli"),
            data_manager.CustomerRow("C1", "Ali"),
            data_manager.CustomerRow("C3", "Zeynep"),
            data_manager.CustomerRow("C4", "Ayse"),
        ),
        transactions=(
            make_transaction(customer_id="C1", customer_name="Ali", total_cost=100),
            make_transaction(customer_id="C2", customer_name="Veli", total_cost=100),
            make_transaction(customer_id="C3", customer_name="Zeynep", total_cost=50, payment_received=50),
            make_transaction(customer_id="C4", customer_name="Ayse", total_cost=50, payment_received=50),
        ),
    )

    def listed(text):
        return [line.split(": ")[1].strip(" *") for line in text.splitlines() if line.startswith("*** Customer")]

    full = reports.render_backup(collections, factory_name="Test Press", generated_at=GENERATED_AT)
    settled = reports.render_non_debtor_backup(collections, factory_name="Test Press", generated_at=GENERATED_AT)

    assert listed(full) == ["Veli", "Ali"]
    assert listed(settled) == ["Zeynep", "Ayse"]


def test_render_receipt_recomputes_line_items(make_transaction):
    transaction = make_transaction(
        customer_name="Ali",
        olive_kg=150,
        oil_litre=30,
        price_per_kg=3,
        tin_counts={"s16": 2},
        tin_prices={"s16": 150},
        total_cost=750,
        payment_received=400,
    )

    text = reports.render_receipt(transaction, factory_name="Test Press", currency="TL")

    assert "Oil ratio: 5.00" in text
    assert "Olive pressing fee: 450TL" in text
    assert "Tin charge: 300TL" in text
    assert "Total: 750TL" in text
    assert "Remaining balance: 350TL" in text


def test_render_receipt_shows_dash_without_ratio(make_transaction):
    transaction = make_transaction(payment_received=500, description=INTERIM_COLLECTION_DESCRIPTION)

    text = reports.render_receipt(transaction, factory_name="Test Press")

    assert "Oil ratio: -" in text
    assert "Remaining balance: -500₺" in text


def test_backup_filename_uses_date_and_kind():
    assert reports.backup_filename("full", GENERATED_AT) == "olive_press_backup_2024-11-30.txt"
    assert reports.backup_filename("non-debtors", GENERATED_AT) == "olive_press_non_debtors_2024-11-30.txt"
    with pytest.raises(ValueError):
        reports.backup_filename("weekly", GENERATED_AT)


def test_render_dashboard_uses_dashboard_income(collections):
    text = reports.render_dashboard(collections, currency="TL")

    assert "Total income: 1.150TL" in text
    assert "Total expense: 1.500TL" in text
    assert "Overall oil ratio: 8.33" in text


def test_render_stock_report_lists_each_size(collections):
    text = reports.render_stock_report(collections, currency="TL")

    assert "[tin]" in text and "[plastic]" in text
    assert "16 L: purchased 10, used 4, remaining 6, avg cost 80TL, remaining value 480TL" in text


def test_render_statistics_includes_profit(collections):
    text = reports.render_statistics(collections, currency="TL")

    assert "2024-11: olives 250 kg, oil 30 L, transactions 2, ratio 8.33" in text
    assert "16 L: sold 4, revenue 400TL, cogs 320TL, net 80TL" in text


def test_render_customer_list_handles_empty_input():
    assert reports.render_customer_list([]) == "No customers found.\n"


def test_render_transaction_line_shows_ratio(make_transaction):
    line = reports.render_transaction_line(
        make_transaction(transaction_id="T9", olive_kg=150, oil_litre=30, total_cost=450), currency="TL"
    )

    assert line == "T9 Ali: total 450TL, remaining 450TL, ratio 150 kg olives / 30 L oil = 5.00"


def test_size_labels_cover_every_family():
    for family in ContainerFamily:
        assert set(reports.SIZE_LABELS[family]) == set(family.sizes)


def test_render_records_csv_writes_header_and_rows(collections, make_transaction):
    collections = replace(
        collections,
        transactions=collections.transactions
        + (make_transaction(customer_id="C1", date="2024-11-20", olive_kg=50, price_per_kg=3, total_cost=150),)
    )

    lines = reports.render_records_csv(collections, currency="TL").splitlines()

    assert lines[0] == (
        "Customer name;Date;Olives (kg);Oil (L);Oil ratio;Price per kg (TL);Tin count;Tin charge (TL);"
        "Plastic count;Plastic charge (TL);Total cost (TL);Payment received (TL);Remaining balance (TL)"
    )
    assert lines[1:] == [
        "Ali;2024-11-20;50;0;N/A;3;0;0;0;0;150;0;150",
        "Ali;2024-11-05;150;30;150 kg olives / 30 L oil = 5.00;3;4;400;0;0;850;500;350",
        "Veli;2024-11-05;100;0;N/A;3;0;0;0;0;300;300;0",
    ]


def test_render_records_csv_filters_by_name_and_date(collections, make_transaction):
    collections = replace(
        collections,
        customers=collections.customers + (data_manager.CustomerRow("C3", "Aliye"),),
        transactions=collections.transactions
        + (make_transaction(customer_id="C2", customer_name="Veli", date="2024-12-02", total_cost=10),),
    )

    by_name = reports.render_records_csv(collections, search="ali").splitlines()[1:]
    by_date = reports.render_records_csv(collections, start_date="2024-12-01").splitlines()[1:]

    assert [line.split(";")[0] for line in by_name] == ["Ali"]
    # Veli keeps every transaction once one falls in range; Aliye has none.
    assert [line.split(";")[:2] for line in by_date] == [["Veli", "2024-12-02"], ["Veli", "2024-11-05"]]


def test_records_filename_uses_date():
    assert reports.records_filename(GENERATED_AT) == "olive_press_records_2024-11-30.csv"
