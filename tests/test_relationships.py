"""Tests for relationship resolution and the index cache."""

from reportforge.engine.relationships import IndexCache, RelationshipResolver
from reportforge.models.formula import FieldRef
from reportforge.warehouse import Warehouse


class TestResolve:
    def test_forward_hop(self, resolver: RelationshipResolver, warehouse: Warehouse):
        """payment -> customer through customer_id."""
        payment = warehouse.rows("payment")[0]
        assert resolver.resolve(payment, "payment", FieldRef.parse("customer.email")) == "alice@example.com"

    def test_multi_hop(self, resolver: RelationshipResolver, warehouse: Warehouse):
        """subscription -> price -> product."""
        sub = warehouse.rows("subscriptions")[0]
        assert resolver.resolve(sub, "subscription", FieldRef.parse("product.name")) == "Pro"

    def test_reverse_hop_takes_first_child(self, resolver: RelationshipResolver, warehouse: Warehouse):
        customer = warehouse.rows("customer")[0]
        assert resolver.resolve(customer, "customer", FieldRef.parse("payment.amount")) == 100

    def test_same_object(self, resolver: RelationshipResolver, warehouse: Warehouse):
        payment = warehouse.rows("payment")[1]
        assert resolver.resolve(payment, "payments", FieldRef.parse("payment.amount")) == 200

    def test_missing_target_is_none(self, resolver: RelationshipResolver):
        """A dangling foreign key is data absence, not an error."""
        orphan = {"id": "pi_x", "customer_id": "cus_missing"}
        assert resolver.resolve(orphan, "payment", FieldRef.parse("customer.email")) is None

    def test_null_foreign_key_is_none(self, resolver: RelationshipResolver):
        assert resolver.resolve({"id": "pi_x"}, "payment", FieldRef.parse("customer.email")) is None

    def test_unrelated_object_is_none(self, resolver: RelationshipResolver, warehouse: Warehouse):
        payment = warehouse.rows("payment")[0]
        assert resolver.resolve(payment, "payment", FieldRef.parse("payout.amount")) is None


class TestPaths:
    def test_find_path(self, resolver: RelationshipResolver):
        path = resolver.find_path("subscription", "product")
        assert [e.target_object for e in path] == ["price", "product"]
        assert all(e.is_forward for e in path)

    def test_find_path_same_object(self, resolver: RelationshipResolver):
        assert resolver.find_path("payment", "payments") == []

    def test_find_path_none(self, resolver: RelationshipResolver):
        assert resolver.find_path("payment", "payout") is None

    def test_resolve_many(self, resolver: RelationshipResolver, warehouse: Warehouse):
        rows = warehouse.rows("payment") + [{"id": "pi_x", "customer_id": None}]
        values = resolver.resolve_many(rows, "payment", FieldRef.parse("customer.country"))
        assert values == ["US", "DE", "US", None]


class TestIndexCache:
    def test_index_built_once(self, warehouse: Warehouse):
        cache = IndexCache()
        resolver = RelationshipResolver(warehouse, cache=cache)
        for row in warehouse.rows("payment"):
            resolver.resolve(row, "payment", FieldRef.parse("customer.email"))

        assert cache.builds == 1
        assert cache.hits == 2

    def test_rebuilt_when_table_replaced(self, warehouse: Warehouse):
        cache = IndexCache()
        resolver = RelationshipResolver(warehouse, cache=cache)
        assert resolver.record("customer", "cus_3") is None

        warehouse.set_table("customers", warehouse.rows("customers") + [{"id": "cus_3", "email": "c@example.com"}])
        assert resolver.record("customer", "cus_3")["email"] == "c@example.com"
        assert cache.builds == 2

    def test_rebuilt_when_row_count_changes(self, warehouse: Warehouse):
        """Appending in place without a version bump still invalidates."""
        cache = IndexCache()
        resolver = RelationshipResolver(warehouse, cache=cache)
        assert resolver.record("product", "prod_2") is None

        warehouse.rows("product").append({"id": "prod_2", "name": "Team"})
        assert resolver.record("product", "prod_2")["name"] == "Team"

    def test_shared_across_resolvers(self, warehouse: Warehouse):
        cache = IndexCache()
        first = RelationshipResolver(warehouse, cache=cache)
        second = first.with_warehouse(warehouse)
        first.record("customer", "cus_1")
        second.record("customer", "cus_1")
        assert cache.stats == {"entries": 1, "hits": 1, "builds": 1}

    def test_superseded_version_is_evicted(self, warehouse: Warehouse):
        cache = IndexCache()
        resolver = RelationshipResolver(warehouse, cache=cache)
        resolver.record("customer", "cus_1")

        warehouse.set_table("customers", warehouse.rows("customers") + [{"id": "cus_3"}])
        assert resolver.record("customer", "cus_3") == {"id": "cus_3"}
        assert cache.stats["entries"] == 1
        assert cache.builds == 2

    def test_only_latest_restriction_is_kept(self, warehouse: Warehouse):
        """Restricted copies don't pile up, the unrestricted index stays."""
        cache = IndexCache()
        resolver = RelationshipResolver(warehouse, cache=cache)
        resolver.record("customer", "cus_1")

        for tag in ("US", "DE", "FR"):
            restricted = warehouse.restrict({"customers": warehouse.rows("customers")[:1]}, tag=tag)
            resolver.with_warehouse(restricted).record("customer", "cus_1")
            assert cache.stats["entries"] == 2

        resolver.record("customer", "cus_2")
        assert cache.stats == {"entries": 2, "hits": 1, "builds": 4}

    def test_clear(self, warehouse: Warehouse):
        cache = IndexCache()
        RelationshipResolver(warehouse, cache=cache).record("customer", "cus_1")
        cache.clear()
        assert cache.stats["entries"] == 0
