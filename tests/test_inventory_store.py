"""
Tests for InventoryStore: atomic stock mutations, reservations and rollback.
"""
import pytest

from storefront.data.models import SIZES, Product
from storefront.errors import InsufficientStockError, ProductNotFoundError, ValidationError


def row(session_factory, product_id):
    with session_factory() as session:
        return session.get(Product, product_id)


def assert_stock_invariant(session_factory, product_id):
    product = row(session_factory, product_id)
    assert product.total_stock == sum(product.size_stock.values())
    assert all(stock >= 0 for stock in product.size_stock.values())
    assert all(held >= 0 for held in product.reserved_stock.values())


@pytest.fixture
def tee(make_product):
    return make_product("Tee", size_stock={"S": 8, "M": 5, "L": 0, "XL": 2, "XXL": 20})


class TestReads:

    def test_available_stock_per_size_and_total(self, inventory, tee):
        assert inventory.available_stock(tee["_id"], "M") == 5
        assert inventory.available_stock(tee["_id"], "m") == 5
        assert inventory.available_stock(tee["_id"]) == 35

    def test_check_inventory(self, inventory, tee):
        assert inventory.check_inventory(tee["_id"], "M", 5) == {"available": True, "availableStock": 5}
        assert inventory.check_inventory(tee["_id"], "M", 6) == {"available": False, "availableStock": 5}

    def test_is_low_stock(self, inventory, tee):
        assert inventory.is_low_stock(tee["_id"], "XL") is True
        assert inventory.is_low_stock(tee["_id"], "L") is False
        assert inventory.is_low_stock(tee["_id"], "XXL") is False

    def test_missing_product(self, inventory):
        with pytest.raises(ProductNotFoundError):
            inventory.available_stock("nope")

    @pytest.mark.parametrize("size,quantity", [("XXXL", 1), ("M", 0), ("M", -2), ("M", 1.5), ("M", True)])
    def test_rejects_bad_arguments(self, inventory, tee, size, quantity):
        with pytest.raises(ValidationError):
            inventory.decrease_stock(tee["_id"], size, quantity)

    def test_low_stock_report(self, inventory, tee, make_product):
        make_product("Plenty", size_stock={size: 50 for size in SIZES})
        report = inventory.low_stock_report()
        assert [entry["name"] for entry in report] == ["Tee"]
        assert report[0]["lowSizes"] == {"S": 8, "M": 5, "XL": 2}

    def test_inventory_report(self, inventory, catalog, tee, make_product):
        make_product("Hidden", price=100.0, size_stock={"S": 4}, is_active=False)
        catalog.delete_product(make_product("Gone")["_id"])
        inventory.decrease_stock(tee["_id"], "M", 2)
        inventory.reserve_stock(tee["_id"], "S", 3)

        report = inventory.inventory_report()

        assert [row["name"] for row in report["products"]] == ["Hidden", "Tee"]
        assert report["summary"] == {
            "totalProducts": 2,
            "activeProducts": 1,
            "totalInventoryValue": 15400.0,
            "totalStock": 34,
            "totalSold": 2,
        }
        row = report["products"][1]
        assert row["category"] == "Uncategorized"
        assert row["value"] == 15000.0
        assert row["sizeStock"]["S"] == 5
        assert row["reservedStock"]["S"] == 3


class TestDecreaseStock:

    def test_decrements_bucket_and_total(self, inventory, session_factory, tee):
        assert inventory.decrease_stock(tee["_id"], "M", 3) is True
        product = row(session_factory, tee["_id"])
        assert product.stock_m == 2
        assert product.total_stock == 32
        assert product.sold == 3

    def test_no_oversell(self, inventory, session_factory, tee):
        assert inventory.decrease_stock(tee["_id"], "M", 6) is False
        product = row(session_factory, tee["_id"])
        assert product.stock_m == 5
        assert product.total_stock == 35
        assert product.sold == 0

    def test_exact_stock_can_be_consumed(self, inventory, tee):
        assert inventory.decrease_stock(tee["_id"], "M", 5) is True
        assert inventory.available_stock(tee["_id"], "M") == 0
        assert inventory.decrease_stock(tee["_id"], "M", 1) is False

    def test_deleted_product_cannot_be_sold(self, inventory, catalog, tee):
        catalog.delete_product(tee["_id"])
        with pytest.raises(ProductNotFoundError):
            inventory.decrease_stock(tee["_id"], "M", 1)

    def test_invalidates_product_cache(self, inventory, catalog, tee):
        assert catalog.get_product(tee["_id"])["sizeStock"]["M"] == 5
        inventory.decrease_stock(tee["_id"], "M", 2)
        assert catalog.get_product(tee["_id"])["sizeStock"]["M"] == 3


class TestReservations:

    def test_reserve_release_symmetry(self, inventory, session_factory, tee):
        before = inventory.available_stock(tee["_id"], "M")
        assert inventory.reserve_stock(tee["_id"], "M", 3) is True
        assert inventory.available_stock(tee["_id"], "M") == before - 3
        assert row(session_factory, tee["_id"]).reserved_m == 3
        assert inventory.release_stock(tee["_id"], "M", 3) is True
        assert inventory.available_stock(tee["_id"], "M") == before
        assert row(session_factory, tee["_id"]).reserved_m == 0

    def test_reserve_fails_when_short(self, inventory, tee):
        assert inventory.reserve_stock(tee["_id"], "L", 1) is False

    def test_release_never_invents_stock(self, inventory, tee):
        assert inventory.release_stock(tee["_id"], "M", 1) is False
        assert inventory.available_stock(tee["_id"], "M") == 5

    def test_confirm_turns_hold_into_sale(self, inventory, session_factory, tee):
        inventory.reserve_stock(tee["_id"], "S", 2)
        assert inventory.confirm_reservation(tee["_id"], "S", 2) is True
        product = row(session_factory, tee["_id"])
        assert product.stock_s == 6
        assert product.reserved_s == 0
        assert product.sold == 2
        assert inventory.confirm_reservation(tee["_id"], "S", 1) is False

    def test_invariant_after_mixed_operations(self, inventory, session_factory, tee):
        inventory.reserve_stock(tee["_id"], "XXL", 5)
        inventory.decrease_stock(tee["_id"], "S", 4)
        inventory.release_stock(tee["_id"], "XXL", 2)
        inventory.decrease_stock(tee["_id"], "XL", 3)
        inventory.restock(tee["_id"], "L", 7)
        inventory.confirm_reservation(tee["_id"], "XXL", 3)
        assert_stock_invariant(session_factory, tee["_id"])
        product = row(session_factory, tee["_id"])
        assert product.size_stock == {"S": 4, "M": 5, "L": 7, "XL": 2, "XXL": 17}
        assert product.sold == 7


class TestReserveItems:

    def test_all_lines_reserved(self, inventory, tee, make_product):
        other = make_product("Hoodie")
        reservations = inventory.reserve_items([
            {"productId": tee["_id"], "size": "M", "quantity": 2},
            {"productId": other["_id"], "size": "xl", "quantity": 1},
        ])
        assert [(r.product_id, r.size, r.quantity) for r in reservations] == [
            (tee["_id"], "M", 2), (other["_id"], "XL", 1),
        ]
        assert inventory.available_stock(tee["_id"], "M") == 3
        assert inventory.available_stock(other["_id"], "XL") == 9

    def test_partial_failure_rolls_back_earlier_lines(self, inventory, session_factory, tee, make_product):
        other = make_product("Hoodie")
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory.reserve_items([
                {"productId": other["_id"], "size": "S", "quantity": 4},
                {"productId": tee["_id"], "size": "M", "quantity": 2},
                {"productId": tee["_id"], "size": "XL", "quantity": 3},
            ])
        assert exc_info.value.available == 2
        assert exc_info.value.size == "XL"
        assert "Tee" in str(exc_info.value)
        assert inventory.available_stock(other["_id"], "S") == 10
        assert inventory.available_stock(tee["_id"], "M") == 5
        for product_id in (tee["_id"], other["_id"]):
            assert_stock_invariant(session_factory, product_id)
            assert all(held == 0 for held in row(session_factory, product_id).reserved_stock.values())

    def test_missing_product_rolls_back(self, inventory, tee):
        with pytest.raises(ProductNotFoundError):
            inventory.reserve_items([
                {"productId": tee["_id"], "size": "M", "quantity": 2},
                {"productId": "missing", "size": "M", "quantity": 1},
            ])
        assert inventory.available_stock(tee["_id"], "M") == 5

    def test_malformed_line_reserves_nothing(self, inventory, tee):
        with pytest.raises(ValidationError):
            inventory.reserve_items([
                {"productId": tee["_id"], "size": "M", "quantity": 2},
                {"productId": tee["_id"], "size": "M", "quantity": 0},
            ])
        assert inventory.available_stock(tee["_id"], "M") == 5

    def test_empty_request(self, inventory):
        with pytest.raises(ValidationError):
            inventory.reserve_items([])

    def test_release_items(self, inventory, tee):
        reservations = inventory.reserve_items([{"productId": tee["_id"], "size": "S", "quantity": 3}])
        assert inventory.release_items(r.to_dict() for r in reservations) == 1
        assert inventory.available_stock(tee["_id"], "S") == 8


class TestCatalogWritesDoNotTouchStock:

    @pytest.mark.parametrize("field", ["total_stock", "stock_m", "size_stock", "sold"])
    def test_update_rejects_stock_fields(self, catalog, tee, field):
        with pytest.raises(ValidationError):
            catalog.update_product(tee["_id"], **{field: 1})


class TestCatalogCategoryUpdates:

    @pytest.fixture
    def hoodie(self, make_product, anime):
        return make_product(
            "Hokage Hoodie",
            category_id=anime["anime"]["_id"],
            subcategory_id=anime["naruto"]["_id"],
        )

    def test_subcategory_from_another_category_is_rejected(self, catalog, session_factory, anime, hoodie):
        with pytest.raises(ValidationError) as exc:
            catalog.update_product(hoodie["_id"], subcategory_id=anime["zelda"]["_id"])
        assert "subcategoryId" in exc.value.errors
        assert row(session_factory, hoodie["_id"]).subcategory_id == anime["naruto"]["_id"]

    def test_category_change_must_keep_subcategory_consistent(self, catalog, anime, hoodie):
        with pytest.raises(ValidationError):
            catalog.update_product(hoodie["_id"], category_id=anime["gaming"]["_id"])

    def test_moving_category_and_subcategory_together(self, catalog, session_factory, anime, hoodie):
        view = catalog.update_product(
            hoodie["_id"],
            category_id=anime["gaming"]["_id"],
            subcategory_id=anime["zelda"]["_id"],
        )
        product = row(session_factory, hoodie["_id"])
        assert (product.category_id, product.subcategory_id) == (anime["gaming"]["_id"], anime["zelda"]["_id"])
        assert view["category"]["name"] == "Gaming"
        assert view["subcategory"]["name"] == "Zelda"

    def test_sibling_subcategory_is_accepted(self, catalog, session_factory, anime, hoodie):
        catalog.update_product(hoodie["_id"], subcategory_id=anime["bleach"]["_id"])
        assert row(session_factory, hoodie["_id"]).subcategory_id == anime["bleach"]["_id"]
