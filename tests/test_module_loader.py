"""
Tests for the category collectors and their failure policies.
"""

from conftest import FakeGraph, b64, boom
from core.models import STATUS_COMPLETE, STATUS_PARTIAL, STATUS_FAILED
from core.module_loader import fncRunCategory, fncRunAllCategories, fncResolveCategories
from modules.intune import categories as cats
from modules.intune.assignments import GROUP_TARGET, ALL_DEVICES_TARGET


def _names(result):
    return [r.Name for r in result.records]


def test_device_configurations_filtered_to_windows(lookup):
    graph = FakeGraph({
        cats.DEVICE_CONFIGURATIONS: [
            {"id": "1", "displayName": "Win", "@odata.type": "#microsoft.graph.windows10GeneralConfiguration"},
            {"id": "2", "displayName": "iOS", "@odata.type": "#microsoft.graph.iosGeneralDeviceConfiguration"},
            {"id": "3", "displayName": "Plat", "@odata.type": "#microsoft.graph.x", "platformType": "windows10"},
        ],
        f"{cats.DEVICE_CONFIGURATIONS}/1/assignments": [
            {"intent": "apply", "target": {"@odata.type": GROUP_TARGET, "groupId": "g1"}},
        ],
    })
    result = fncRunCategory(cats.CATEGORY_BY_KEY["device_configurations"], graph, lookup)
    assert result.status == STATUS_COMPLETE
    assert _names(result) == ["Win", "Plat"]
    assert result.records[0].Assignments[0].TargetDescription == "Group: Engineering (Include)"
    # no assignment fetch for the filtered-out resource
    assert f"{cats.DEVICE_CONFIGURATIONS}/2/assignments" not in graph.calls


def test_endpoint_security_filters_at_template_level(lookup):
    graph = FakeGraph({
        cats.TEMPLATES: [
            {"id": "t1", "displayName": "Defender", "platformType": "windows10EndpointProtection"},
            {"id": "t2", "displayName": "Mac AV", "platformType": "macOS"},
        ],
        f"{cats.INTENTS}?templateId eq 't1'": [
            {"id": "i1", "displayName": "AV Prod"},
            {"id": "i2", "displayName": "AV Pilot"},
        ],
    })
    result = fncRunCategory(cats.CATEGORY_BY_KEY["endpoint_security"], graph, lookup)
    assert _names(result) == ["AV Prod", "AV Pilot"]
    assert {r.Type for r in result.records} == {"Endpoint Security - Defender"}
    assert f"{cats.INTENTS}?templateId eq 't2'" not in graph.calls


def test_windows_update_uses_server_side_filter(lookup):
    key = f"{cats.DEVICE_CONFIGURATIONS}?isof('microsoft.graph.windowsUpdateForBusinessConfiguration')"
    graph = FakeGraph({key: [{"id": "u1", "displayName": "Ring 1",
                              "@odata.type": "#microsoft.graph.windowsUpdateForBusinessConfiguration"}]})
    result = fncRunCategory(cats.CATEGORY_BY_KEY["windows_update"], graph, lookup)
    assert _names(result) == ["Ring 1"]
    assert result.records[0].Type == "Windows Update Policy"


def test_group_policy_includes_everything(lookup):
    graph = FakeGraph({cats.GROUP_POLICY_CONFIGURATIONS: [{"id": "a", "displayName": "A"},
                                                          {"id": "b", "displayName": "B"}]})
    result = fncRunCategory(cats.CATEGORY_BY_KEY["group_policy"], graph, lookup)
    assert _names(result) == ["A", "B"]


def test_policy_failure_keeps_partial_progress(lookup):
    graph = FakeGraph({
        cats.COMPLIANCE_POLICIES: [
            {"id": str(i), "displayName": f"P{i}", "@odata.type": "#microsoft.graph.windows10CompliancePolicy"}
            for i in range(5)
        ],
        f"{cats.COMPLIANCE_POLICIES}/3/assignments": boom(),
    })
    result = fncRunCategory(cats.CATEGORY_BY_KEY["compliance"], graph, lookup)
    assert result.status == STATUS_PARTIAL
    assert _names(result) == ["P0", "P1", "P2"]
    assert "500" in result.error


def test_policy_failure_before_any_record_is_failed(lookup):
    graph = FakeGraph({cats.CONFIGURATION_POLICIES: boom()})
    result = fncRunCategory(cats.CATEGORY_BY_KEY["settings_catalog"], graph, lookup)
    assert result.status == STATUS_FAILED
    assert result.records == []


def test_remediation_failure_after_three_records_discards_all(lookup):
    graph = FakeGraph({
        cats.HEALTH_SCRIPTS: [
            {"id": str(i), "displayName": f"S{i}", "detectionScriptContent": b64("x")} for i in range(5)
        ],
        f"{cats.HEALTH_SCRIPTS}/3/assignments": boom(),
    })
    result = fncRunCategory(cats.CATEGORY_BY_KEY["remediation_scripts"], graph, lookup)
    assert result.status == STATUS_FAILED
    assert result.records == []


def test_platform_script_fetches_body_when_list_omits_it(lookup):
    graph = FakeGraph({
        cats.PLATFORM_SCRIPTS: [{"id": "p1", "displayName": "Wallpaper"}],
        f"{cats.PLATFORM_SCRIPTS}/p1": {"id": "p1", "scriptContent": b64("Set-Wallpaper")},
        f"{cats.PLATFORM_SCRIPTS}/p1/assignments": [
            {"intent": "apply", "target": {"@odata.type": ALL_DEVICES_TARGET}},
        ],
    })
    result = fncRunCategory(cats.CATEGORY_BY_KEY["platform_scripts"], graph, lookup)
    assert result.status == STATUS_COMPLETE
    rec = result.records[0]
    assert rec.ScriptBodies[0].Content == "Set-Wallpaper"
    assert rec.AssignmentCount == 1


def test_run_all_isolates_categories_and_keeps_order(lookup):
    graph = FakeGraph({
        cats.DEVICE_CONFIGURATIONS: boom(),
        cats.CONFIGURATION_POLICIES: [{"id": "s", "name": "Catalog", "platforms": "windows10"}],
        cats.TEMPLATES: [],
        f"{cats.DEVICE_CONFIGURATIONS}?isof('microsoft.graph.windowsUpdateForBusinessConfiguration')": [],
        cats.GROUP_POLICY_CONFIGURATIONS: [],
        cats.COMPLIANCE_POLICIES: [],
        cats.HEALTH_SCRIPTS: [],
        cats.PLATFORM_SCRIPTS: [],
    })
    results = fncRunAllCategories(graph, group_lookup=lookup)
    assert list(results) == [c.key for c in cats.CATEGORIES]
    assert results["device_configurations"].status == STATUS_FAILED
    assert _names(results["settings_catalog"]) == ["Catalog"]
    assert all(r.status == STATUS_COMPLETE for k, r in results.items() if k != "device_configurations")


def test_skip_list(lookup):
    keys = [c.key for c in fncResolveCategories(["group_policy", "not_a_category"])]
    assert "group_policy" not in keys
    assert len(keys) == len(cats.CATEGORIES) - 1


def test_every_record_keeps_assignment_count_invariant(lookup):
    graph = FakeGraph({
        cats.GROUP_POLICY_CONFIGURATIONS: [{"id": "a", "displayName": "A"}],
        f"{cats.GROUP_POLICY_CONFIGURATIONS}/a/assignments": [
            {"target": {"@odata.type": ALL_DEVICES_TARGET}},
            {"target": {"@odata.type": GROUP_TARGET, "groupId": "nope"}},
        ],
    })
    result = fncRunCategory(cats.CATEGORY_BY_KEY["group_policy"], graph, lookup)
    for rec in result.records:
        assert rec.AssignmentCount == len(rec.Assignments)
