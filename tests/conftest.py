"""Pytest fixtures for ReportForge tests."""

import json
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from reportforge.catalog.loader import CatalogLoader
from reportforge.config import EngineSettings
from reportforge.engine.relationships import RelationshipResolver
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import Formula, Granularity
from reportforge.models.query import ReportQuery
from reportforge.store import ReportEngine
from reportforge.warehouse import Warehouse


@pytest.fixture
def catalog_yaml() -> str:
    """A small Stripe-like catalog."""
    return """
objects:
  - name: customer
    label: Customer
    fields:
      - {name: id, type: id}
      - {name: email, type: string}
      - {name: country, type: string}
      - {name: balance, type: number, unit: currency}
      - {name: created, type: date}

  - name: payment
    label: Payment
    fields:
      - {name: id, type: id}
      - {name: customer_id, type: id}
      - {name: amount, type: number, unit: currency}
      - {name: currency, type: string, enum: [usd, eur]}
      - {name: status, type: string, enum: [succeeded, failed]}
      - {name: refunded, type: boolean}
      - {name: created, type: date}

  - name: refund
    fields:
      - {name: id, type: id}
      - {name: payment_id, type: id}
      - {name: amount, type: number, unit: currency}
      - {name: created, type: date}

  - name: subscription
    fields:
      - {name: id, type: id}
      - {name: customer_id, type: id}
      - {name: price_id, type: id}
      - {name: status, type: string, enum: [active, canceled]}
      - {name: quantity, type: number}
      - {name: current_period_start, type: date}
      - {name: created, type: date}
    timestamp_fields: [current_period_start, created]

  - name: price
    fields:
      - {name: id, type: id}
      - {name: product_id, type: id}
      - {name: unit_amount, type: number, unit: currency}

  - name: product
    fields:
      - {name: id, type: id}
      - {name: name, type: string}

relationships:
  - {from: customer, to: payment, type: one-to-many, via: customer_id}
  - {from: customer, to: subscription, type: one-to-many, via: customer_id}
  - {from: payment, to: refund, type: one-to-many, via: payment_id}
  - {from: subscription, to: price, type: many-to-one, via: price_id}
  - {from: price, to: product, type: many-to-one, via: product_id}
"""


@pytest.fixture
def catalog(catalog_yaml: str) -> SchemaCatalog:
    return CatalogLoader().load_text(catalog_yaml)


@pytest.fixture
def tables() -> dict[str, list[dict[str, Any]]]:
    """Sample tables, keyed by plural table names like an export would be."""
    return {
        "customers": [
            {"id": "cus_1", "email": "alice@example.com", "country": "US", "balance": 500, "created": "2025-01-02"},
            {"id": "cus_2", "email": "bob@example.com", "country": "DE", "balance": 1500, "created": "2025-02-15"},
        ],
        "payments": [
            {"id": "pi_1", "customer_id": "cus_1", "amount": 100, "currency": "usd",
             "status": "succeeded", "refunded": False, "created": "2025-01-05"},
            {"id": "pi_2", "customer_id": "cus_2", "amount": 200, "currency": "usd",
             "status": "succeeded", "refunded": True, "created": "2025-02-10"},
            {"id": "pi_3", "customer_id": "cus_1", "amount": 300, "currency": "usd",
             "status": "failed", "refunded": False, "created": "2025-02-20"},
        ],
        "refunds": [
            {"id": "re_1", "payment_id": "pi_2", "amount": 50, "created": "2025-02-12"},
        ],
        "subscriptions": [
            {"id": "sub_1", "customer_id": "cus_1", "price_id": "price_1", "status": "active",
             "quantity": 2, "current_period_start": "2025-01-10", "created": "2025-01-01"},
            {"id": "sub_2", "customer_id": "cus_2", "price_id": "price_1", "status": "canceled",
             "quantity": 1, "current_period_start": None, "created": "2025-02-01"},
        ],
        "prices": [
            {"id": "price_1", "product_id": "prod_1", "unit_amount": 2000},
        ],
        "products": [
            {"id": "prod_1", "name": "Pro"},
        ],
    }


@pytest.fixture
def warehouse(tables: dict[str, list[dict[str, Any]]], catalog: SchemaCatalog) -> Warehouse:
    return Warehouse(tables, catalog)


@pytest.fixture
def resolver(warehouse: Warehouse) -> RelationshipResolver:
    return RelationshipResolver(warehouse)


@pytest.fixture
def engine(warehouse: Warehouse) -> ReportEngine:
    return ReportEngine(warehouse, settings=EngineSettings())


@pytest.fixture
def revenue_formula() -> Formula:
    """Single block: sum of payment amounts."""
    return Formula.model_validate(
        {"blocks": [{"id": "revenue", "name": "Revenue", "source": "payment.amount", "op": "sum"}]}
    )


@pytest.fixture
def make_query() -> Callable[..., ReportQuery]:
    """Build a ReportQuery over Jan-Feb 2025 with sensible defaults."""

    def _make(
        formula: Formula | dict,
        start: date = date(2025, 1, 1),
        end: date = date(2025, 2, 28),
        granularity: Granularity = Granularity.MONTH,
        **kwargs: Any,
    ) -> ReportQuery:
        if isinstance(formula, dict):
            formula = Formula.model_validate(formula)
        return ReportQuery(formula=formula, start=start, end=end, granularity=granularity, **kwargs)

    return _make


@pytest.fixture
def data_dir(tmp_path: Path, tables: dict[str, list[dict[str, Any]]]) -> Path:
    """Warehouse files on disk: one json file per table."""
    path = tmp_path / "data"
    path.mkdir()
    for name, rows in tables.items():
        (path / f"{name}.json").write_text(json.dumps(rows))
    return path


@pytest.fixture
def catalog_file(tmp_path: Path, catalog_yaml: str) -> Path:
    path = tmp_path / "catalog.yaml"
    path.write_text(catalog_yaml)
    return path


@pytest.fixture
def report_file(tmp_path: Path) -> Path:
    path = tmp_path / "revenue.yaml"
    path.write_text(
        """
name: Monthly revenue
formula:
  blocks:
    - id: revenue
      name: Revenue
      source: payment.amount
      op: sum
start: 2025-01-01
end: 2025-02-28
granularity: month
objects: [payment]
"""
    )
    return path
