"""
Tests for assignment target normalisation.
"""

from core.models import Assignment
from modules.intune.assignments import (
    fncNormalizeAssignments,
    fncMakeGroupLookup,
    UNRESOLVED_GROUP,
    GROUP_TARGET,
    EXCLUSION_GROUP_TARGET,
    ALL_DEVICES_TARGET,
    ALL_USERS_TARGET,
)


def _raw(kind, group_id=None, intent="apply"):
    target = {"@odata.type": kind}
    if group_id:
        target["groupId"] = group_id
    return {"id": "a", "intent": intent, "target": target}


def test_included_group_is_resolved(lookup):
    out = fncNormalizeAssignments([_raw(GROUP_TARGET, "g1", "required")], lookup)
    assert out == [Assignment("Group: Engineering (Include)", "required")]


def test_excluded_group(lookup):
    out = fncNormalizeAssignments([_raw(EXCLUSION_GROUP_TARGET, "g2")], lookup)
    assert out[0].TargetDescription == "Group: Finance (Exclude)"


def test_lookup_exception_uses_placeholder():
    def broken(_gid):
        raise RuntimeError("group gone")

    out = fncNormalizeAssignments([_raw(GROUP_TARGET, "g1", "required")], broken)
    assert out == [Assignment(f"Group: {UNRESOLVED_GROUP} (Include)", "required")]


def test_lookup_returning_nothing_uses_placeholder(lookup):
    out = fncNormalizeAssignments([_raw(GROUP_TARGET, "missing")], lookup)
    assert out[0].TargetDescription == "Group: Unable to resolve group name (Include)"


def test_all_devices_and_all_users(lookup):
    out = fncNormalizeAssignments([_raw(ALL_DEVICES_TARGET), _raw(ALL_USERS_TARGET, intent="available")], lookup)
    assert [a.TargetDescription for a in out] == ["All Devices", "All Users"]
    assert out[1].Intent == "available"


def test_unknown_target_and_missing_target(lookup):
    out = fncNormalizeAssignments(
        [_raw("#microsoft.graph.configurationManagerCollectionAssignmentTarget"), {"intent": "apply"}],
        lookup,
    )
    assert [a.TargetDescription for a in out] == ["Unknown", "Unknown"]


def test_intent_copied_verbatim_even_when_absent(lookup):
    raw = {"target": {"@odata.type": ALL_DEVICES_TARGET}}
    assert fncNormalizeAssignments([raw], lookup)[0].Intent is None


def test_one_output_per_input_in_order_without_dedup(lookup):
    raws = [
        _raw(GROUP_TARGET, "g1"),
        _raw(ALL_DEVICES_TARGET),
        _raw(GROUP_TARGET, "g1"),
        _raw(EXCLUSION_GROUP_TARGET, "g2"),
    ]
    out = fncNormalizeAssignments(raws, lookup)
    assert len(out) == len(raws)
    assert [a.TargetDescription for a in out] == [
        "Group: Engineering (Include)",
        "All Devices",
        "Group: Engineering (Include)",
        "Group: Finance (Exclude)",
    ]


def test_normalising_twice_gives_same_result(lookup):
    raws = [_raw(GROUP_TARGET, "g1"), _raw(ALL_USERS_TARGET)]
    assert fncNormalizeAssignments(raws, lookup) == fncNormalizeAssignments(raws, lookup)


def test_one_lookup_call_per_group_assignment():
    seen = []

    def counting(gid):
        seen.append(gid)
        return "Name"

    fncNormalizeAssignments(
        [_raw(GROUP_TARGET, "g1"), _raw(ALL_DEVICES_TARGET), _raw(GROUP_TARGET, "g1")], counting
    )
    assert seen == ["g1", "g1"]


def test_empty_or_none_assignment_list(lookup):
    assert fncNormalizeAssignments([], lookup) == []
    assert fncNormalizeAssignments(None, lookup) == []


def test_graph_backed_lookup(fake_graph):
    graph = fake_graph({"groups/g1": {"id": "g1", "displayName": "Engineering"}})
    lookup = fncMakeGroupLookup(graph)
    assert lookup("g1") == "Engineering"
    assert graph.calls == ["groups/g1"]
