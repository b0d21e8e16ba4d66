"""Enumerations and fixed values shared across the olive press ERP modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), the aggregation engine and the CLI rely on a single source
of truth for sheet names, container sizes and built-in prices.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, Tuple


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Description marking a payment-only ledger entry ("interim collection").
INTERIM_COLLECTION_DESCRIPTION = "Ara Tahsilat"

UNKNOWN_CUSTOMER_NAME = "Unknown customer"

DEFAULT_CURRENCY = "₺"


class ContainerFamily(str, Enum):
    """Enumerate the packaging categories sold alongside pressed oil."""

    TIN = "tin"
    PLASTIC = "plastic"

    @property
    def sizes(self) -> Tuple[str, ...]:
        """Size variant keys for the family, largest first."""

        return CONTAINER_SIZES[self]


CONTAINER_SIZES: Dict[ContainerFamily, Tuple[str, ...]] = {
    ContainerFamily.TIN: ("s16", "s10", "s5"),
    ContainerFamily.PLASTIC: ("s10", "s5", "s2"),
}


class BalanceFilter(str, Enum):
    """Customer list filters keyed on the remaining balance sign."""

    ALL = "all"
    DEBTORS = "debtors"
    NON_DEBTORS = "non-debtors"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    CUSTOMERS = "Customers"
    TRANSACTIONS = "Transactions"
    WORKER_EXPENSES = "WorkerExpenses"
    FACTORY_OVERHEAD = "FactoryOverhead"
    POMACE_REVENUES = "PomaceRevenues"
    TIN_PURCHASES = "TinPurchases"
    PLASTIC_PURCHASES = "PlasticPurchases"
    OIL_PURCHASES = "OilPurchases"
    OIL_SALES = "OilSales"
    DEFAULT_PRICES = "DefaultPrices"


class Collection(str, Enum):
    """Logical collection names exchanged with the persistence collaborator."""

    CUSTOMERS = "customers"
    TRANSACTIONS = "transactions"
    WORKER_EXPENSES = "workerExpenses"
    FACTORY_OVERHEAD = "factoryOverhead"
    POMACE_REVENUES = "pomaceRevenues"
    TIN_PURCHASES = "tinPurchases"
    PLASTIC_PURCHASES = "plasticPurchases"
    OIL_PURCHASES = "oilPurchases"
    OIL_SALES = "oilSales"

    @property
    def sheet(self) -> SheetName:
        return SheetName[self.name]


DEFAULT_PRICE_PER_KG = Decimal("3")
DEFAULT_TIN_PRICES: Dict[str, Decimal] = {
    "s16": Decimal("80"),
    "s10": Decimal("70"),
    "s5": Decimal("60"),
}
DEFAULT_PLASTIC_PRICES: Dict[str, Decimal] = {
    "s10": Decimal("20"),
    "s5": Decimal("15"),
    "s2": Decimal("10"),
}
DEFAULT_OIL_PURCHASE_PRICE = Decimal("200")
DEFAULT_OIL_SALE_PRICE = Decimal("250")


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "INTERIM_COLLECTION_DESCRIPTION",
    "UNKNOWN_CUSTOMER_NAME",
    "DEFAULT_CURRENCY",
    "ContainerFamily",
    "CONTAINER_SIZES",
    "BalanceFilter",
    "SheetName",
    "Collection",
    "DEFAULT_PRICE_PER_KG",
    "DEFAULT_TIN_PRICES",
    "DEFAULT_PLASTIC_PRICES",
    "DEFAULT_OIL_PURCHASE_PRICE",
    "DEFAULT_OIL_SALE_PRICE",
]
