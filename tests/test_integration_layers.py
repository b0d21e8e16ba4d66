"""Integration tests describing the end-to-end olive press workflows.

These scenarios document how the data access, business logic and reporting
layers collaborate against a real workbook written to a temporary folder.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from olive_press_erp import cli, core_logic, reports
from olive_press_erp.aggregation import calculate_customer_balance, summarize_customers
from olive_press_erp.constants import INTERIM_COLLECTION_DESCRIPTION, BalanceFilter, Collection, ContainerFamily
from olive_press_erp.summary import calculate_dashboard_summary, calculate_factory_summary


def _stock_the_press(context: core_logic.RuntimeContext) -> None:
    """Buy containers and record the running costs of a season."""

    core_logic.save_container_purchase(
        context,
        core_logic.ContainerPurchaseCommand(
            family=ContainerFamily.TIN, quantities={"s16": "10"}, unit_price="80", date="2024-10-01"
        ),
    )
    core_logic.save_container_purchase(
        context,
        core_logic.ContainerPurchaseCommand(
            family=ContainerFamily.PLASTIC, quantities={"s5": "20"}, unit_price="5", date="2024-10-01"
        ),
    )
    core_logic.save_worker_expense(
        context, core_logic.WorkerExpenseCommand(worker_name="Hasan", amount="1000", days_worked="5")
    )
    core_logic.save_overhead_expense(
        context, core_logic.OverheadExpenseCommand(description="Electricity", amount="200")
    )
    core_logic.save_pomace_revenue(
        context, core_logic.PomaceRevenueCommand(load_kg="1000", price_per_kg="0.5", truck_count="1")
    )


def test_pressing_season_flow(runtime_context):
    """Walk through purchases, a pressing, a collection and the summaries."""

    context = runtime_context
    _stock_the_press(context)

    # Default prices fill in the per-kg fee and container prices.
    transaction = core_logic.save_transaction(
        context,
        core_logic.TransactionCommand(
            customer_name="Ali",
            date="2024-11-05",
            olive_kg="150",
            oil_litre="30",
            tin_counts={"s16": "4"},
            plastic_counts={"s5": "2"},
            payment_received="300",
        ),
    )
    assert transaction.total_cost == Decimal("800")
    assert transaction.remaining_balance == Decimal("500")

    collection = core_logic.collect_payment(
        context, core_logic.PaymentCollectionCommand(amount="200", customer_name="Ali", date="2024-11-20")
    )
    assert collection.description == INTERIM_COLLECTION_DESCRIPTION

    # Persist and reload so later reads come from disk.
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)
    snapshot = core_logic.load_snapshot(context)

    assert [row.customer_name for row in snapshot.transactions] == ["Ali", "Ali"]
    balance = calculate_customer_balance(snapshot.transactions, transaction.customer_id, "Ali")
    assert balance.remaining_balance == Decimal("300")
    assert balance.transaction_count == 2

    summary = calculate_factory_summary(snapshot)
    assert summary.remaining_tin_value == Decimal("480")
    assert summary.remaining_plastic_value == Decimal("90")
    assert summary.total_income == Decimal("1870")
    assert summary.total_expense == Decimal("2100")

    dashboard = calculate_dashboard_summary(snapshot)
    assert dashboard.total_income == Decimal("1300")
    assert dashboard.total_expense == Decimal("1200")
    assert summary.total_income - dashboard.total_income == Decimal("570")


def test_editing_a_transaction_survives_reload(runtime_context):
    context = runtime_context
    original = core_logic.save_transaction(
        context,
        core_logic.TransactionCommand(customer_name="Veli", date="2024-11-01", olive_kg="100", price_per_kg="3"),
    )
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)

    edited = core_logic.save_transaction(
        context,
        core_logic.TransactionCommand(
            customer_id=original.customer_id,
            olive_kg="120",
            price_per_kg="3",
            payment_received="360",
            transaction_id=original.transaction_id,
        ),
    )
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)

    (stored,) = core_logic.load_snapshot(context).transactions
    assert stored.transaction_id == original.transaction_id
    assert stored.date == "2024-11-01"
    assert stored.total_cost == edited.total_cost == Decimal("360")
    assert stored.remaining_balance == Decimal("0")


def test_interim_collection_cannot_be_edited_after_reload(runtime_context):
    context = runtime_context
    core_logic.save_customer(context, core_logic.CustomerCommand(name="Ayse"))
    collection = core_logic.collect_payment(
        context, core_logic.PaymentCollectionCommand(amount="50", customer_name="Ayse")
    )
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)

    with pytest.raises(core_logic.ImmutableRecordError):
        core_logic.save_transaction(
            context,
            core_logic.TransactionCommand(customer_name="Ayse", transaction_id=collection.transaction_id),
        )


def test_customer_delete_cascades_to_transactions(runtime_context):
    context = runtime_context
    ali = core_logic.save_transaction(
        context, core_logic.TransactionCommand(customer_name="Ali", olive_kg="100", price_per_kg="3")
    )
    core_logic.save_transaction(
        context, core_logic.TransactionCommand(customer_name="Ali", olive_kg="50", price_per_kg="3")
    )
    veli = core_logic.save_transaction(
        context, core_logic.TransactionCommand(customer_name="Veli", olive_kg="10", price_per_kg="3")
    )

    removed = core_logic.delete_record(context, Collection.CUSTOMERS, ali.customer_id)
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)
    snapshot = core_logic.load_snapshot(context)

    assert removed == 3
    assert [row.name for row in snapshot.customers] == ["Veli"]
    assert [row.transaction_id for row in snapshot.transactions] == [veli.transaction_id]


def test_debtor_filter_and_backup_agree(runtime_context):
    context = runtime_context
    core_logic.save_transaction(
        context,
        core_logic.TransactionCommand(customer_name="Ali", olive_kg="100", price_per_kg="3", payment_received="100"),
    )
    core_logic.save_transaction(
        context,
        core_logic.TransactionCommand(customer_name="Veli", olive_kg="100", price_per_kg="3", payment_received="300"),
    )
    snapshot = core_logic.load_snapshot(context)

    debtors = summarize_customers(snapshot.customers, snapshot.transactions, balance_filter=BalanceFilter.DEBTORS)
    assert [balance.name for balance in debtors] == ["Ali"]

    text = reports.render_non_debtor_backup(
        snapshot, factory_name=context.settings.factory_name, generated_at=datetime(2024, 11, 30)
    )
    assert "*** Customer: Veli ***" in text
    assert "*** Customer: Ali ***" not in text


def test_cli_round_trip_persists_between_invocations(config_file, capsys):
    config = ["--config", str(config_file)]

    assert cli.main([*config, "set-prices", "--price-per-kg", "4"]) == 0
    assert cli.main([*config, "transaction", "--customer", "Ali", "--olive-kg", "150", "--oil-litre", "30"]) == 0
    assert "total 600TL" in capsys.readouterr().out

    assert cli.main([*config, "collect-payment", "--customer", "Ali", "--amount", "100"]) == 0
    capsys.readouterr()

    assert cli.main([*config, "customers", "--filter", "debtors"]) == 0
    assert "balance 500TL" in capsys.readouterr().out

    assert cli.main([*config, "backup"]) == 0
    backup = capsys.readouterr().out
    assert "*** Customer: Ali ***" in backup
    assert INTERIM_COLLECTION_DESCRIPTION in backup


def test_cli_payment_edit_survives_default_price_change(config_file, capsys):
    config = ["--config", str(config_file)]

    assert (
        cli.main([*config, "transaction", "--customer", "Ali", "--olive-kg", "100", "--oil-litre", "20", "--tin", "s16=2"])
        == 0
    )
    transaction_id = capsys.readouterr().out.split()[0]

    assert cli.main([*config, "set-prices", "--price-per-kg", "9", "--tin-price", "s16=200"]) == 0
    assert cli.main([*config, "transaction", "--transaction-id", transaction_id, "--paid", "460"]) == 0
    assert capsys.readouterr().out.strip() == (
        f"{transaction_id} Ali: total 460TL, remaining 0TL, ratio 100 kg olives / 20 L oil = 5.00"
    )

    context = core_logic.load_runtime_context(config_file)
    (stored,) = core_logic.load_snapshot(context).transactions
    assert stored.price_per_kg == Decimal("3")
    assert stored.tin_prices["s16"] == Decimal("80")
    assert stored.payment_received == Decimal("460")


def test_cli_rejects_schema_mismatch_before_writing(config_factory):
    bundle = config_factory(schema_version="0.9.0")
    before = bundle.workbook_path.read_bytes()

    exit_code = cli.main(["--config", str(bundle.config_path), "add-customer", "--name", "Ali"])

    assert exit_code == 1
    assert bundle.workbook_path.read_bytes() == before
