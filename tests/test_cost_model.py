"""
Construction Budget Engine
Tests — Cost Model (WorkBudget → BudgetCategory → BudgetItem).

Covers:
    - Derived totals after every mutation
    - Idempotent recomputation
    - Range validation leaves the budget untouched
    - Document round trip ignores client-sent totals
"""

from decimal import Decimal

import pytest

from app.core.exceptions import InvalidRangeError, NotFoundError, ValidationError
from app.services import cost_model as cm


def _budget_with_items(*prices):
    budget = cm.add_category(cm.empty_budget(7), "Foundation")
    cid = budget.categories[0].id
    for price in prices:
        budget = cm.add_item(budget, cid, f"Line {price}", "vb", 1, price)
    return budget, cid


def _assert_consistent(budget):
    for c in budget.categories:
        for i in c.items:
            assert i.total_price == i.quantity * i.unit_price
        assert c.category_total == sum((i.total_price for i in c.items), Decimal("0"))
    assert budget.total_value == sum((c.category_total for c in budget.categories), Decimal("0"))


class TestEmptyBudget:
    def test_empty_budget_has_zero_total_and_version_zero(self):
        budget = cm.empty_budget(3)
        assert budget.categories == []
        assert budget.total_value == 0
        assert budget.version == 0
        assert budget.work_id == 3


class TestCategories:
    def test_add_category_defaults_name_and_zero_progress(self):
        budget = cm.add_category(cm.empty_budget(1))
        budget = cm.add_category(budget)
        assert [c.name for c in budget.categories] == ["Stage 1", "Stage 2"]
        assert all(c.progress == 0 and c.category_total == 0 for c in budget.categories)

    def test_add_category_does_not_mutate_input(self):
        original = cm.empty_budget(1)
        cm.add_category(original, "Roof")
        assert original.categories == []

    def test_rename_requires_name(self):
        budget, cid = _budget_with_items()
        with pytest.raises(ValidationError):
            cm.rename_category(budget, cid, "  ")
        assert cm.rename_category(budget, cid, "Walls").categories[0].name == "Walls"

    def test_remove_category_updates_total(self):
        budget, cid = _budget_with_items(100, 50)
        budget = cm.add_category(budget, "Roof")
        budget = cm.add_item(budget, budget.categories[1].id, "Tiles", "m²", 10, 30)
        assert budget.total_value == 450

        budget = cm.remove_category(budget, cid)
        assert budget.total_value == 300
        _assert_consistent(budget)

    def test_unknown_category_raises_not_found(self):
        with pytest.raises(NotFoundError):
            cm.remove_category(cm.empty_budget(1), "cat_missing")

    def test_schedule_end_before_start_rejected(self):
        budget, cid = _budget_with_items()
        with pytest.raises(ValidationError):
            cm.set_category_schedule(budget, cid, "2024-03-10", "2024-03-01")
        budget = cm.set_category_schedule(budget, cid, "2024-03-01", "2024-03-10")
        assert budget.categories[0].start_date.isoformat() == "2024-03-01"


class TestItems:
    def test_three_items_sum_to_category_total(self):
        budget, _ = _budget_with_items(5000, 3000, 2000)
        assert budget.categories[0].category_total == 10000
        assert budget.total_value == 10000
        _assert_consistent(budget)

    def test_quantity_change_propagates_to_totals(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        budget = cm.set_item_quantity_or_price(budget, cid, item_id, "quantity", "2.5")
        assert budget.categories[0].items[0].total_price == Decimal("500.0")
        assert budget.total_value == Decimal("500.0")

    def test_unit_price_change_propagates_to_totals(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        budget = cm.set_item_quantity_or_price(budget, cid, item_id, "unitPrice", 80)
        assert budget.total_value == 80
        _assert_consistent(budget)

    def test_negative_quantity_rejected_and_budget_unchanged(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        with pytest.raises(InvalidRangeError):
            cm.set_item_quantity_or_price(budget, cid, item_id, "quantity", -1)
        assert budget.categories[0].items[0].quantity == 1
        assert budget.total_value == 200

    def test_only_quantity_or_unit_price_editable(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        with pytest.raises(ValidationError):
            cm.set_item_quantity_or_price(budget, cid, item_id, "totalPrice", 5)

    def test_non_numeric_value_rejected(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        with pytest.raises(ValidationError):
            cm.set_item_quantity_or_price(budget, cid, item_id, "unitPrice", "abc")
        with pytest.raises(ValidationError):
            cm.set_item_quantity_or_price(budget, cid, item_id, "unitPrice", float("nan"))

    def test_removing_last_item_leaves_zero_total(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        budget = cm.remove_item(budget, cid, item_id)
        assert budget.categories[0].items == []
        assert budget.categories[0].category_total == 0
        assert budget.total_value == 0

    def test_remove_unknown_item_raises(self):
        budget, cid = _budget_with_items(200)
        with pytest.raises(NotFoundError):
            cm.remove_item(budget, cid, "item_missing")

    def test_update_item_details_keeps_prices(self):
        budget, cid = _budget_with_items(200)
        item_id = budget.categories[0].items[0].id
        budget = cm.update_item_details(budget, cid, item_id, description="Formwork", notes="rented")
        item = budget.categories[0].items[0]
        assert (item.description, item.notes, item.total_price) == ("Formwork", "rented", 200)


class TestRecalculation:
    def test_recalculate_is_idempotent(self):
        budget, _ = _budget_with_items(5000, 3000, 2000)
        once = cm.recalculate_totals(budget)
        twice = cm.recalculate_totals(once)
        assert once.to_dict() == twice.to_dict()

    def test_from_dict_ignores_client_totals(self):
        doc = {
            "id": "b1", "workId": 9, "totalValue": 1, "version": 4,
            "categories": [{
                "id": "cat_a", "name": "A", "categoryTotal": 999, "progress": 30,
                "items": [{"id": "i1", "description": "x", "unit": "m²",
                           "quantity": 4, "unitPrice": 25, "totalPrice": 1}],
            }],
        }
        budget = cm.WorkBudget.from_dict(doc)
        assert budget.total_value == 100
        assert budget.categories[0].category_total == 100
        assert budget.categories[0].items[0].total_price == 100
        assert budget.categories[0].progress_base == 30
        assert budget.version == 4

    def test_from_dict_rejects_out_of_range_progress(self):
        with pytest.raises(InvalidRangeError):
            cm.BudgetCategory.from_dict({"id": "c", "name": "c", "progress": 140})

    def test_from_dict_rejects_duplicate_category_ids(self):
        doc = {"categories": [
            {"id": "dup", "name": "A", "items": [{"id": "i1", "quantity": 1, "unitPrice": 100}]},
            {"id": "dup", "name": "B", "items": [{"id": "i2", "quantity": 1, "unitPrice": 900}]},
        ]}
        with pytest.raises(ValidationError):
            cm.WorkBudget.from_dict(doc, work_id=1)

    def test_from_dict_rejects_duplicate_item_ids(self):
        with pytest.raises(ValidationError):
            cm.BudgetCategory.from_dict({"id": "c", "name": "c", "items": [
                {"id": "i1", "quantity": 1, "unitPrice": 1},
                {"id": "i1", "quantity": 2, "unitPrice": 1},
            ]})

    @pytest.mark.parametrize("value, expected", [(None, None), ("", None), (3, 3), ("4", 4)])
    def test_to_version(self, value, expected):
        assert cm.to_version(value) == expected

    @pytest.mark.parametrize("value", ["abc", True, [1], 2.5j])
    def test_to_version_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            cm.to_version(value)

    def test_to_dict_uses_camel_case_layout(self):
        budget, _ = _budget_with_items(10)
        doc = budget.to_dict()
        assert set(doc) == {"id", "workId", "totalValue", "categories", "updatedAt", "version"}
        assert {"categoryTotal", "progress", "progressBase"} <= set(doc["categories"][0])
        assert {"unitPrice", "totalPrice"} <= set(doc["categories"][0]["items"][0])
