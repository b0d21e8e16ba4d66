"""Shared pytest fixtures and utilities for olive press ERP tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from olive_press_erp import cli, constants, core_logic, data_manager  # noqa: E402
from olive_press_erp.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "FactoryName = {factory_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "Currency = {currency}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    factory_name: str
    currency: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "olive_press_data.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        factory_name: str = "Test Press",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        currency: str = "TL",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                factory_name=factory_name,
                schema_version=schema_version,
                currency=currency,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            factory_name=factory_name,
            currency=currency,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def _decimals(values: Mapping[str, Any] | None) -> dict[str, Decimal]:
    return {key: Decimal(str(value)) for key, value in (values or {}).items()}


@pytest.fixture
def make_transaction() -> Callable[..., data_manager.TransactionRow]:
    """Build transaction rows with zeroed defaults for every unspecified field."""

    counter = {"next": 0}

    def _make(
        *,
        customer_id: str | None = "C1",
        customer_name: str = "Ali",
        date: str = "2024-11-05",
        olive_kg: Any = 0,
        oil_litre: Any = 0,
        price_per_kg: Any = 0,
        tin_counts: Mapping[str, Any] | None = None,
        tin_prices: Mapping[str, Any] | None = None,
        plastic_counts: Mapping[str, Any] | None = None,
        plastic_prices: Mapping[str, Any] | None = None,
        payment_received: Any = 0,
        payment_loss: Any = 0,
        total_cost: Any = 0,
        description: str = "",
        transaction_id: str | None = None,
    ) -> data_manager.TransactionRow:
        counter["next"] += 1
        total = Decimal(str(total_cost))
        paid = Decimal(str(payment_received))
        loss = Decimal(str(payment_loss))
        return data_manager.TransactionRow(
            transaction_id=transaction_id or f"T{counter['next']}",
            customer_id=customer_id,
            customer_name=customer_name,
            date=date,
            olive_kg=Decimal(str(olive_kg)),
            oil_litre=Decimal(str(oil_litre)),
            price_per_kg=Decimal(str(price_per_kg)),
            tin_counts=_decimals(tin_counts),
            tin_prices=_decimals(tin_prices),
            plastic_counts=_decimals(plastic_counts),
            plastic_prices=_decimals(plastic_prices),
            payment_received=paid,
            payment_loss=loss,
            total_cost=total,
            remaining_balance=total - paid - loss,
            description=description,
        )

    return _make


@pytest.fixture
def make_purchase() -> Callable[..., data_manager.ContainerPurchaseRow]:
    """Build container purchase rows whose stored total matches the line items."""

    counter = {"next": 0}

    def _make(
        family: constants.ContainerFamily = constants.ContainerFamily.TIN,
        *,
        quantities: Mapping[str, Any],
        unit_price: Any,
        date: str = "2024-10-01",
        purchase_id: str | None = None,
    ) -> data_manager.ContainerPurchaseRow:
        counter["next"] += 1
        amounts = _decimals(quantities)
        price = Decimal(str(unit_price))
        return data_manager.ContainerPurchaseRow(
            purchase_id=purchase_id or f"{family.value[0].upper()}P{counter['next']}",
            family=family,
            date=date,
            quantities=amounts,
            unit_price=price,
            total_cost=sum(amounts.values(), Decimal("0")) * price,
        )

    return _make


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="press-cli", description="Olive press CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("catalog-test")

    spec = cli.CommandSpec(
        name="catalog-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "catalog-test", spec


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "olive_press_data.xlsx",
        factory_name="Test Press",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        currency="TL",
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
