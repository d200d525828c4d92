"""Tests for catalog loading and the catalog model."""

from pathlib import Path

import pytest

from reportforge.catalog.loader import CatalogLoader, default_catalog, load_catalog
from reportforge.models.catalog import Edge, FieldType, SchemaCatalog
from reportforge.models.formula import UnitType


class TestCatalogLoader:
    def test_load_file(self, catalog_file: Path):
        """Can load a catalog from a single file."""
        catalog = load_catalog(catalog_file)

        assert [obj.name for obj in catalog.objects] == [
            "customer", "payment", "refund", "subscription", "price", "product"
        ]
        assert len(catalog.relationships) == 5

    def test_load_directory(self, tmp_path: Path):
        """Objects and relationships can be split over files in any order."""
        (tmp_path / "b_relationships.yaml").write_text(
            "relationships:\n  - {from: customer, to: payment, via: customer_id}\n"
        )
        (tmp_path / "a_objects.yml").write_text(
            "objects:\n"
            "  - {name: customer, fields: [{name: id, type: id}]}\n"
            "  - {name: payment, fields: [{name: id, type: id}, {name: customer_id, type: id}]}\n"
        )

        catalog = load_catalog(tmp_path)
        assert [obj.name for obj in catalog.objects] == ["customer", "payment"]
        assert catalog.relationships[0].from_object == "customer"

    def test_load_nonexistent_directory(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            CatalogLoader().load_directory(tmp_path / "nonexistent")

    def test_load_nonexistent_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_catalog(tmp_path / "nope.yaml")

    def test_load_empty_directory(self, tmp_path: Path):
        empty_dir = tmp_path / "empty"
        empty_dir.mkdir()
        with pytest.raises(ValueError, match="No YAML files"):
            load_catalog(empty_dir)

    def test_empty_file_is_an_empty_catalog(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_catalog(path).objects == []

    def test_duplicate_object(self):
        text = "objects:\n  - {name: customer}\n  - {name: customer}\n"
        with pytest.raises(ValueError, match="Duplicate schema object"):
            CatalogLoader().load_text(text)

    def test_unknown_relationship_reference(self):
        text = (
            "objects:\n  - {name: customer}\n"
            "relationships:\n  - {from: customer, to: invoice, via: customer_id}\n"
        )
        with pytest.raises(ValueError, match="unknown object 'invoice'"):
            CatalogLoader().load_text(text)

    def test_relationship_may_use_table_names(self):
        text = (
            "objects:\n  - {name: customer}\n  - {name: payment}\n"
            "relationships:\n  - {from: customers, to: payments, via: customer_id}\n"
        )
        catalog = CatalogLoader().load_text(text)
        assert len(catalog.relationships) == 1

    def test_default_catalog(self):
        """The bundled catalog loads and is self-consistent."""
        catalog = default_catalog()

        assert catalog.get_object("payment") is not None
        assert catalog.get_field("subscription_item", "quantity").unit == UnitType.VOLUME
        assert catalog.get_object("subscription").timestamp_fields == ["current_period_start", "created"]


class TestSchemaCatalog:
    def test_field_types(self, catalog: SchemaCatalog):
        payment = catalog.get_object("payment")

        assert payment.get_field("amount").type == FieldType.NUMBER
        assert payment.get_field("amount").unit == UnitType.CURRENCY
        assert payment.get_field("status").enum == ["succeeded", "failed"]
        assert payment.get_field("missing") is None

    def test_fields_default_to_string(self, catalog: SchemaCatalog):
        assert catalog.get_object("refund").get_field("id").type == FieldType.ID
        assert CatalogLoader().load_text("objects:\n  - {name: x, fields: [{name: y}]}\n").get_field(
            "x", "y"
        ).type == FieldType.STRING

    def test_table_names(self, catalog: SchemaCatalog):
        assert catalog.get_object("payment").table_name == "payments"
        assert catalog.get_object("payments").name == "payment"

    def test_canonical_name(self, catalog: SchemaCatalog):
        assert catalog.canonical_name("payment") == "payment"
        assert catalog.canonical_name("payments") == "payment"
        assert catalog.canonical_name("payouts") == "payouts"

    def test_edges(self, catalog: SchemaCatalog):
        """Forward (foreign key) edges come before reverse ones."""
        edges = catalog.edges()

        assert edges[0] == Edge("payment", "customer", "customer_id", "id")
        assert Edge("customer", "payment", "id", "customer_id") in edges[5:]
        # many-to-one: the `from` side holds the key
        assert Edge("subscription", "price", "price_id", "id") in edges[:5]
        assert all(edge.is_forward for edge in edges[:5])
        assert not any(edge.is_forward for edge in edges[5:])

    def test_many_to_many_is_not_traversed(self):
        text = (
            "objects:\n  - {name: product}\n  - {name: coupon}\n"
            "relationships:\n  - {from: product, to: coupon, type: many-to-many, via: coupon_id}\n"
        )
        assert CatalogLoader().load_text(text).edges() == []
