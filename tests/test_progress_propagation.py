"""
Construction Budget Engine
Tests — Progress Propagation (pure engine).

Covers:
    - Manual overwrite (may decrease, range checked, re-anchors the base)
    - Field-report deltas clamp at 100 and complete linked tasks
    - Unlinked tasks are a no-op
    - Measurement headroom
    - Ledger re-derivation
"""

import pytest

from app.core.exceptions import InvalidRangeError, NotFoundError
from app.models.work import UNLINKED, Linked, stage_link
from app.services import cost_model as cm
from app.services.progress_propagation import (
    ProgressUpdate,
    apply_measurement,
    apply_progress_updates,
    derive_progress,
    rederive_categories,
    set_category_progress,
)


@pytest.fixture()
def budget():
    b = cm.add_category(cm.empty_budget(1), "Foundation")
    b = cm.add_category(b, "Roof")
    return b


def _cid(budget, idx=0):
    return budget.categories[idx].id


class TestStageLink:
    def test_empty_stage_id_is_unlinked(self):
        assert stage_link(None) is UNLINKED
        assert stage_link("") is UNLINKED
        assert stage_link("cat_1") == Linked("cat_1")


class TestManualProgress:
    def test_overwrite_can_decrease(self, budget):
        cid = _cid(budget)
        b = set_category_progress(budget, cid, 80)
        b = set_category_progress(b, cid, 30)
        assert b.categories[0].progress == 30
        assert b.categories[0].progress_base == 30

    @pytest.mark.parametrize("value", [-1, 101, 12.5, "50", True])
    def test_out_of_range_rejected_and_unchanged(self, budget, value):
        with pytest.raises(InvalidRangeError):
            set_category_progress(budget, _cid(budget), value)
        assert budget.categories[0].progress == 0

    def test_unknown_category(self, budget):
        with pytest.raises(NotFoundError):
            set_category_progress(budget, "cat_missing", 10)


class TestFieldReportDeltas:
    def test_two_deltas_same_category_clamp_at_100_and_complete_tasks(self, budget):
        cid = _cid(budget)
        budget = set_category_progress(budget, cid, 70)
        links = {1: Linked(cid), 2: Linked(cid)}
        updates = [ProgressUpdate(1, 15), ProgressUpdate(2, 20)]

        result = apply_progress_updates(budget, updates, links)

        assert result.budget.categories[0].progress == 100
        assert result.completed_task_ids == [1, 2]
        assert [d.delta for d in result.applied] == [15, 20]
        # Input snapshot untouched
        assert budget.categories[0].progress == 70

    def test_unlinked_task_is_a_noop(self, budget):
        result = apply_progress_updates(budget, [ProgressUpdate(5, 40)], {5: UNLINKED})
        assert [c.progress for c in result.budget.categories] == [0, 0]
        assert result.applied == []
        assert result.completed_task_ids == []
        assert result.skipped_task_ids == [5]

    def test_zero_delta_still_completes_task(self, budget):
        result = apply_progress_updates(budget, [ProgressUpdate(1, 0)], {1: Linked(_cid(budget))})
        assert result.budget.categories[0].progress == 0
        assert result.completed_task_ids == [1]

    def test_unknown_task_rejects_whole_report(self, budget):
        links = {1: Linked(_cid(budget))}
        with pytest.raises(NotFoundError):
            apply_progress_updates(budget, [ProgressUpdate(1, 10), ProgressUpdate(99, 10)], links)

    def test_link_to_missing_category_raises(self, budget):
        with pytest.raises(NotFoundError):
            apply_progress_updates(budget, [ProgressUpdate(1, 10)], {1: Linked("cat_gone")})

    def test_progress_never_decreases_through_deltas(self, budget):
        cid = _cid(budget)
        budget = set_category_progress(budget, cid, 55)
        result = apply_progress_updates(budget, [ProgressUpdate(1, 0)], {1: Linked(cid)})
        assert result.budget.categories[0].progress >= 55

    def test_update_from_dict_accepts_camel_and_snake_case(self):
        assert ProgressUpdate.from_dict({"taskId": 3, "progressDelta": 10}) == ProgressUpdate(3, 10)
        assert ProgressUpdate.from_dict({"task_id": "3", "progress_delta": 10.0}) == ProgressUpdate(3, 10)
        with pytest.raises(InvalidRangeError):
            ProgressUpdate.from_dict({"taskId": 3, "progressDelta": 120})


class TestMeasurement:
    def test_delta_within_headroom(self, budget):
        cid = _cid(budget)
        budget = set_category_progress(budget, cid, 60)
        result = apply_measurement(budget, 4, Linked(cid), 40)
        assert result.budget.categories[0].progress == 100
        assert result.completed_task_ids == [4]

    def test_delta_above_headroom_rejected(self, budget):
        cid = _cid(budget)
        budget = set_category_progress(budget, cid, 60)
        with pytest.raises(InvalidRangeError) as exc:
            apply_measurement(budget, 4, Linked(cid), 41)
        assert exc.value.high == 40

    def test_unlinked_measurement_is_noop(self, budget):
        result = apply_measurement(budget, 4, UNLINKED, 30)
        assert result.budget is budget
        assert result.skipped_task_ids == [4]
        assert result.completed_task_ids == []


class TestLedgerDerivation:
    def test_derive_progress_clamps(self):
        assert derive_progress(40, [10, 20]) == 70
        assert derive_progress(90, [30]) == 100
        assert derive_progress(0, []) == 0

    def test_rederive_only_touches_targets(self, budget):
        a, b = _cid(budget, 0), _cid(budget, 1)
        budget = set_category_progress(budget, a, 20)
        budget = set_category_progress(budget, b, 50)
        rederived = rederive_categories(budget, {a: [15, 5], b: [40]}, [a])
        assert rederived.categories[0].progress == 40
        assert rederived.categories[1].progress == 50

    def test_rederive_ignores_removed_categories(self, budget):
        assert rederive_categories(budget, {"cat_gone": [10]}, ["cat_gone"]) is budget
