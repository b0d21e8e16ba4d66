"""Tests for the workbook initialisation script."""

from __future__ import annotations

from decimal import Decimal

import openpyxl
import pytest

from olive_press_erp import data_manager, setup_excel
from olive_press_erp.constants import SheetName


def test_create_master_workbook_writes_every_sheet(tmp_path):
    destination = setup_excel.create_master_workbook(tmp_path / "data" / "press.xlsx")

    workbook = openpyxl.load_workbook(destination)
    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    for sheet_name, columns in data_manager.SHEET_COLUMNS.items():
        header = [cell.value for cell in workbook[sheet_name][1]]
        assert header == list(columns)
        assert workbook[sheet_name]["A1"].font.bold


def test_create_master_workbook_seeds_default_prices(tmp_path):
    prices = data_manager.DefaultPrices(price_per_kg=Decimal("5"))
    destination = setup_excel.create_master_workbook(tmp_path / "press.xlsx", default_prices=prices)

    loaded = data_manager.read_default_prices(openpyxl.load_workbook(destination))

    assert loaded.price_per_kg == Decimal("5")
    assert loaded.tin_prices == prices.tin_prices
    sheet = openpyxl.load_workbook(destination)[SheetName.DEFAULT_PRICES.value]
    assert sheet.max_row == 1 + len(data_manager.serialize_default_prices(prices))


def test_create_master_workbook_refuses_to_overwrite(tmp_path):
    destination = setup_excel.create_master_workbook(tmp_path / "press.xlsx")

    with pytest.raises(FileExistsError):
        setup_excel.create_master_workbook(destination)
    assert setup_excel.create_master_workbook(destination, overwrite=True) == destination


def test_main_creates_workbook_from_config(config_factory, capsys):
    bundle = config_factory()
    bundle.workbook_path.unlink()

    exit_code = setup_excel.main(["--config", str(bundle.config_path)])

    assert exit_code == 0
    assert bundle.workbook_path.exists()
    assert "[SUCCESS]" in capsys.readouterr().out


def test_main_reports_existing_workbook(config_factory, capsys):
    bundle = config_factory()

    exit_code = setup_excel.main(["--config", str(bundle.config_path)])

    assert exit_code == 1
    assert "--force" in capsys.readouterr().out


def test_main_reports_missing_config(tmp_path, capsys):
    exit_code = setup_excel.main(["--config", str(tmp_path / "absent.ini")])

    assert exit_code == 1
    assert "[ERROR]" in capsys.readouterr().out
