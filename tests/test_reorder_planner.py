import pytest

from services.errors import Conflict, NotFound, ValidationError
from services.reorder_planner import Move, plan_reorder, staging_prefix

NS = "invpics/units/VIN1/"
OP = "op1"
TMP = staging_prefix(NS, OP)


def _pairs(plan):
    """(source name, final name) relative to the namespace."""
    return [(m.source[len(NS):], m.final[len(NS):]) for m in plan.moves]


def _apply(names, plan):
    """Apply a plan to a set of names the way the two-phase mover would."""
    current = set(names)
    for src, _ in _pairs(plan):
        current.discard(src)
    for _, final in _pairs(plan):
        assert final not in current
        current.add(final)
    return current


def test_moving_down_shifts_the_range_back_by_one():
    plan = plan_reorder(NS, ["1.jpg", "2.png", "3.webp"], "1.jpg", "3.jpg", operation_id=OP)

    assert _pairs(plan) == [("2.png", "1.png"), ("3.webp", "2.webp"), ("1.jpg", "3.jpg")]
    assert plan.moves[0] == Move(NS + "2.png", TMP + "2.png", NS + "1.png")
    assert plan.moved and plan.staged
    assert plan.new_name == "3.jpg"
    assert _apply(["1.jpg", "2.png", "3.webp"], plan) == {"1.png", "2.webp", "3.jpg"}


def test_moving_up_shifts_the_range_forward_by_one():
    names = ["1.jpg", "2.png", "3.webp", "4.gif"]
    plan = plan_reorder(NS, names, "4.gif", "2.gif", operation_id=OP)

    assert _pairs(plan) == [("3.webp", "4.webp"), ("2.png", "3.png"), ("4.gif", "2.gif")]
    assert _apply(names, plan) == {"1.jpg", "2.gif", "3.png", "4.webp"}


def test_images_outside_the_shift_range_are_untouched():
    names = ["1.jpg", "2.jpg", "3.jpg", "4.jpg", "5.jpg"]
    plan = plan_reorder(NS, names, "2.jpg", "3.jpg", operation_id=OP)

    assert _pairs(plan) == [("3.jpg", "2.jpg"), ("2.jpg", "3.jpg")]


def test_gaps_contribute_no_moves():
    names = ["1.jpg", "3.png", "6.webp"]
    plan = plan_reorder(NS, names, "1.jpg", "6.jpg", operation_id=OP)

    assert _pairs(plan) == [("3.png", "2.png"), ("6.webp", "5.webp"), ("1.jpg", "6.jpg")]


def test_source_is_found_by_index_and_keeps_its_stored_extension():
    plan = plan_reorder(NS, ["1.png", "2.jpg"], "1.jpg", "2.jpg", operation_id=OP)

    assert _pairs(plan) == [("2.jpg", "1.jpg"), ("1.png", "2.png")]
    assert plan.new_name == "2.png"


@pytest.mark.parametrize("names,old,new", [
    (["1.jpg", "2.png", "3.webp", "4.gif"], "1.jpg", "4.jpg"),
    (["1.jpg", "2.png", "3.webp", "4.gif"], "4.gif", "1.gif"),
    (["1.jpg", "2.png", "3.webp", "4.gif", "5.jpg"], "5.jpg", "2.jpg"),
    (["1.jpg", "2.png", "3.webp"], "2.png", "3.png"),
])
def test_reorder_is_a_bijection_on_existing_indices(names, old, new):
    plan = plan_reorder(NS, names, old, new, operation_id=OP)
    after = _apply(names, plan)

    assert sorted(int(n.split(".")[0]) for n in after) == sorted(int(n.split(".")[0]) for n in names)
    before_ext = sorted(n.split(".")[1] for n in names)
    assert sorted(n.split(".")[1] for n in after) == before_ext


def test_identity_is_a_no_op():
    plan = plan_reorder(NS, ["1.jpg", "2.jpg"], "2.jpg", "2.JPG")

    assert plan.moves == []
    assert not plan.moved


def test_identity_requires_the_source():
    with pytest.raises(NotFound):
        plan_reorder(NS, ["1.jpg"], "2.jpg", "2.jpg")


def test_same_index_different_extension_is_a_direct_rename():
    plan = plan_reorder(NS, ["1.jpg", "2.jpg"], "2.jpg", "2.png")

    assert plan.moves == [Move(NS + "2.jpg", None, NS + "2.png")]
    assert plan.moved and not plan.staged


def test_same_index_rename_onto_existing_name_conflicts():
    with pytest.raises(Conflict):
        plan_reorder(NS, ["2.jpg", "2.png"], "2.jpg", "2.png")


def test_same_index_rename_requires_exact_source():
    with pytest.raises(NotFound):
        plan_reorder(NS, ["2.webp"], "2.jpg", "2.png")


@pytest.mark.parametrize("old,new", [("a.jpg", "1.jpg"), ("1.jpg", "x"), (".init", "1.jpg"), ("1.bmp", "2.jpg")])
def test_unparsable_names_are_rejected(old, new):
    with pytest.raises(ValidationError):
        plan_reorder(NS, ["1.jpg"], old, new)


def test_missing_source_index_is_not_found():
    with pytest.raises(NotFound):
        plan_reorder(NS, ["1.jpg", "3.jpg"], "2.jpg", "3.jpg")


def test_duplicate_index_inside_the_range_conflicts():
    with pytest.raises(Conflict):
        plan_reorder(NS, ["1.jpg", "2.jpg", "2.png", "3.jpg"], "1.jpg", "3.jpg")


def test_duplicate_index_outside_the_range_is_ignored():
    plan = plan_reorder(NS, ["1.jpg", "2.jpg", "5.jpg", "5.png"], "1.jpg", "2.jpg", operation_id=OP)
    assert _pairs(plan) == [("2.jpg", "1.jpg"), ("1.jpg", "2.jpg")]


def test_hidden_and_staged_names_do_not_take_part():
    names = ["1.jpg", "2.jpg", ".lock", "__tmp__/old/3.jpg", "__tmp__/old/plan.json"]
    plan = plan_reorder(NS, names, "2.jpg", "1.jpg", operation_id=OP)
    assert _pairs(plan) == [("1.jpg", "2.jpg"), ("2.jpg", "1.jpg")]


def test_each_plan_gets_its_own_staging_folder():
    a = plan_reorder(NS, ["1.jpg", "2.jpg"], "1.jpg", "2.jpg")
    b = plan_reorder(NS, ["1.jpg", "2.jpg"], "1.jpg", "2.jpg")
    assert a.operation_id != b.operation_id
    assert a.staging_prefix.startswith(NS + "__tmp__/")
    assert all(m.temp.startswith(a.staging_prefix) for m in a.moves)


def test_far_target_only_moves_occupied_positions():
    plan = plan_reorder(NS, ["1.jpg", "2.jpg"], "1.jpg", "999999999.jpg", operation_id=OP)
    assert _pairs(plan) == [("2.jpg", "1.jpg"), ("1.jpg", "999999999.jpg")]
    assert plan.new_name == "999999999.jpg"
