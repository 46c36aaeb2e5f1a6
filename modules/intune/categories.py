# ================================================================
# File     : modules/intune/categories.py
# Purpose  : Fetch loops for the eight Intune categories we document
# Notes    : Collectors append into result.records as they go, so a
#            failure part-way leaves whatever was already gathered.
#            The runner in core/module_loader.py decides what to keep.
# ================================================================

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from core.models import CategoryResult
from core.utils import fncPrintMessage
from modules.intune.assignments import GroupLookup
from modules.intune import flatteners as fl

REQUIRED_PERMS = [
    "DeviceManagementConfiguration.Read.All",
    "DeviceManagementManagedDevices.Read.All",
    "Group.Read.All",
]

DEVICE_CONFIGURATIONS = "deviceManagement/deviceConfigurations"
CONFIGURATION_POLICIES = "deviceManagement/configurationPolicies"
TEMPLATES = "deviceManagement/templates"
INTENTS = "deviceManagement/intents"
GROUP_POLICY_CONFIGURATIONS = "deviceManagement/groupPolicyConfigurations"
COMPLIANCE_POLICIES = "deviceManagement/deviceCompliancePolicies"
HEALTH_SCRIPTS = "deviceManagement/deviceHealthScripts"
PLATFORM_SCRIPTS = "deviceManagement/deviceManagementScripts"

KIND_POLICY = "policy"
KIND_SCRIPT = "script"


@dataclass(frozen=True)
class Category:
    key: str
    label: str
    kind: str
    collect: Callable[[Any, GroupLookup, CategoryResult], None]

    @property
    def discards_partial(self) -> bool:
        # Script categories throw away a half-finished pass
        return self.kind == KIND_SCRIPT


def _assignments(client, base: str, resource_id: str) -> List[Dict[str, Any]]:
    return client.get_all(f"{base}/{resource_id}/assignments")


def _collect_simple(client, group_lookup: GroupLookup, result: CategoryResult,
                    endpoint: str, predicate, flatten, params=None, assignments_base=None) -> None:
    items = client.get_all(endpoint, params=params)
    fncPrintMessage(f"{result.category}: {len(items)} item(s) returned", "debug")
    for item in items:
        if predicate and not predicate(item):
            continue
        raw = _assignments(client, assignments_base or endpoint, item["id"])
        result.records.append(flatten(item, raw, group_lookup))


# ================================================================
# Collectors (one per category)
# ================================================================
def fncCollectDeviceConfigurations(client, group_lookup, result):
    _collect_simple(client, group_lookup, result, DEVICE_CONFIGURATIONS,
                    fl.fncIsWindowsDeviceConfiguration, fl.fncFlattenDeviceConfiguration)


def fncCollectSettingsCatalog(client, group_lookup, result):
    _collect_simple(client, group_lookup, result, CONFIGURATION_POLICIES,
                    fl.fncIsWindowsSettingsCatalog, fl.fncFlattenSettingsCatalog)


def fncCollectEndpointSecurity(client, group_lookup, result):
    templates = client.get_all(TEMPLATES)
    for template in templates:
        if not fl.fncIsWindowsEndpointSecurityTemplate(template):
            continue
        intents = client.get_all(INTENTS, params={"$filter": f"templateId eq '{template['id']}'"})
        fncPrintMessage(f"Template '{template.get('displayName')}': {len(intents)} intent(s)", "debug")
        for intent in intents:
            raw = _assignments(client, INTENTS, intent["id"])
            result.records.append(fl.fncFlattenEndpointSecurityIntent(intent, template, raw, group_lookup))


def fncCollectWindowsUpdate(client, group_lookup, result):
    _collect_simple(client, group_lookup, result, DEVICE_CONFIGURATIONS,
                    fl.fncIsWindowsUpdatePolicy, fl.fncFlattenWindowsUpdatePolicy,
                    params={"$filter": "isof('microsoft.graph.windowsUpdateForBusinessConfiguration')"})


def fncCollectGroupPolicy(client, group_lookup, result):
    _collect_simple(client, group_lookup, result, GROUP_POLICY_CONFIGURATIONS,
                    None, fl.fncFlattenGroupPolicy)


def fncCollectCompliance(client, group_lookup, result):
    _collect_simple(client, group_lookup, result, COMPLIANCE_POLICIES,
                    fl.fncIsWindowsCompliancePolicy, fl.fncFlattenCompliancePolicy)


def fncCollectRemediationScripts(client, group_lookup, result):
    _collect_simple(client, group_lookup, result, HEALTH_SCRIPTS,
                    None, fl.fncFlattenRemediationScript)


def fncCollectPlatformScripts(client, group_lookup, result):
    for script in client.get_all(PLATFORM_SCRIPTS):
        content = script.get("scriptContent")
        if content is None:
            # list responses omit the body; the single-item GET carries it
            content = client.get(f"{PLATFORM_SCRIPTS}/{script['id']}").get("scriptContent")
        raw = _assignments(client, PLATFORM_SCRIPTS, script["id"])
        result.records.append(fl.fncFlattenPlatformScript(script, raw, group_lookup, script_content=content))


CATEGORIES: List[Category] = [
    Category("device_configurations", "Device Configurations", KIND_POLICY, fncCollectDeviceConfigurations),
    Category("settings_catalog", "Settings Catalog", KIND_POLICY, fncCollectSettingsCatalog),
    Category("endpoint_security", "Endpoint Security", KIND_POLICY, fncCollectEndpointSecurity),
    Category("windows_update", "Windows Update", KIND_POLICY, fncCollectWindowsUpdate),
    Category("group_policy", "Administrative Templates", KIND_POLICY, fncCollectGroupPolicy),
    Category("compliance", "Compliance Policies", KIND_POLICY, fncCollectCompliance),
    Category("remediation_scripts", "Remediation Scripts", KIND_SCRIPT, fncCollectRemediationScripts),
    Category("platform_scripts", "Platform Scripts", KIND_SCRIPT, fncCollectPlatformScripts),
]

CATEGORY_BY_KEY: Dict[str, Category] = {c.key: c for c in CATEGORIES}
