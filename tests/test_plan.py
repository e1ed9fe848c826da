from conftest import RANGES_V1, RANGES_V2
from harborlist.trust.sync import compute_transition_plan


def test_plan_from_nothing():
    plan = compute_transition_plan(None, RANGES_V1)
    assert plan.base_version == 0
    assert plan.added == RANGES_V1.all_ranges
    assert plan.removed == []
    assert plan.has_changes


def test_plan_added_and_removed():
    committed = RANGES_V1.model_copy(update={"version": 4})
    plan = compute_transition_plan(committed, RANGES_V2)

    assert plan.base_version == 4
    assert plan.added == ["104.16.0.0/13"]
    assert plan.removed == ["103.21.244.0/22"]
    assert set(plan.union) == set(RANGES_V1.all_ranges) | set(RANGES_V2.all_ranges)

    summary = plan.summary()
    assert "+ 104.16.0.0/13" in summary
    assert "- 103.21.244.0/22" in summary
    assert "then narrowed to 3" in summary


def test_plan_no_changes():
    plan = compute_transition_plan(RANGES_V1, RANGES_V1.model_copy(deep=True))
    assert not plan.has_changes
    assert "No changes" in plan.summary()
