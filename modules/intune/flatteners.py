# ================================================================
# File     : modules/intune/flatteners.py
# Purpose  : Windows applicability checks and raw-resource -> record
#            mapping for every Intune category we document
# Notes    : Pure functions. Fetching lives in categories.py.
# ================================================================

import re
from typing import Any, Dict, Iterable, List, Optional

from core.models import PolicyRecord, ScriptRecord, ScriptBody
from core.utils import fncSafeGet, fncDecodeBase64
from modules.intune.assignments import fncNormalizeAssignments, GroupLookup

GRAPH_TYPE_PREFIX = "#microsoft.graph."
UPDATE_POLICY_TYPE = "#microsoft.graph.windowsUpdateForBusinessConfiguration"
ENDPOINT_PROTECTION_PLATFORM = "windows10EndpointProtection"

_OS_VERSION_RE = re.compile(r"10\.")

Raw = Dict[str, Any]


# ---------- predicate helpers ----------

def _platform_list(val: Any) -> List[str]:
    """Graph sends platforms as a flags string ("windows10, macOS") or a list."""
    if not val:
        return []
    if isinstance(val, str):
        parts = val.split(",")
    elif isinstance(val, (list, tuple)):
        parts = val
    else:
        return []
    return [str(p).strip().lower() for p in parts if str(p).strip()]


def _os_version_bounds(resource: Raw) -> List[str]:
    keys = (
        "applicabilityRuleOsVersion.minOSVersion",
        "applicabilityRuleOsVersion.maxOSVersion",
        "osMinimumVersion",
        "osMaximumVersion",
    )
    return [str(v) for v in (fncSafeGet(resource, k) for k in keys) if v]


def _graph_type(resource: Raw) -> str:
    return str(resource.get("@odata.type") or "")


def fncStripTypePrefix(odata_type: str) -> str:
    if odata_type.startswith(GRAPH_TYPE_PREFIX):
        return odata_type[len(GRAPH_TYPE_PREFIX):]
    return odata_type.lstrip("#")


def _matches_windows_type_or_platform(resource: Raw) -> bool:
    return (
        "windows" in _graph_type(resource).lower()
        or resource.get("platformType") == "windows10"
        or "windows10" in _platform_list(resource.get("platforms"))
    )


# ---------- Windows predicates ----------

def fncIsWindowsDeviceConfiguration(resource: Raw) -> bool:
    if _matches_windows_type_or_platform(resource):
        return True
    return any(_OS_VERSION_RE.search(v) for v in _os_version_bounds(resource))


def fncIsWindowsSettingsCatalog(resource: Raw) -> bool:
    return "windows10" in _platform_list(resource.get("platforms"))


def fncIsWindowsEndpointSecurityTemplate(template: Raw) -> bool:
    return template.get("platformType") == ENDPOINT_PROTECTION_PLATFORM


def fncIsWindowsUpdatePolicy(resource: Raw) -> bool:
    # The list call is already filtered server-side; an absent type is trusted
    odata_type = _graph_type(resource)
    return odata_type in ("", UPDATE_POLICY_TYPE)


def fncIsWindowsCompliancePolicy(resource: Raw) -> bool:
    return _matches_windows_type_or_platform(resource)


# ---------- record builders ----------

def _name(resource: Raw) -> str:
    return resource.get("displayName") or resource.get("name") or ""


def _policy(resource: Raw, type_label: str, raw_assignments: Iterable[Raw],
            group_lookup: GroupLookup) -> PolicyRecord:
    return PolicyRecord(
        Name=_name(resource),
        Description=resource.get("description") or "",
        Type=type_label,
        CreatedAt=resource.get("createdDateTime"),
        ModifiedAt=resource.get("lastModifiedDateTime"),
        ID=resource.get("id"),
        Assignments=fncNormalizeAssignments(raw_assignments, group_lookup),
    )


def fncFlattenDeviceConfiguration(resource: Raw, raw_assignments: Iterable[Raw],
                                  group_lookup: GroupLookup) -> PolicyRecord:
    return _policy(resource, fncStripTypePrefix(_graph_type(resource)), raw_assignments, group_lookup)


def fncFlattenSettingsCatalog(resource: Raw, raw_assignments: Iterable[Raw],
                              group_lookup: GroupLookup) -> PolicyRecord:
    return _policy(resource, "Settings Catalog", raw_assignments, group_lookup)


def fncFlattenEndpointSecurityIntent(intent: Raw, template: Raw, raw_assignments: Iterable[Raw],
                                     group_lookup: GroupLookup) -> PolicyRecord:
    label = f"Endpoint Security - {template.get('displayName') or ''}"
    return _policy(intent, label, raw_assignments, group_lookup)


def fncFlattenWindowsUpdatePolicy(resource: Raw, raw_assignments: Iterable[Raw],
                                  group_lookup: GroupLookup) -> PolicyRecord:
    return _policy(resource, "Windows Update Policy", raw_assignments, group_lookup)


def fncFlattenGroupPolicy(resource: Raw, raw_assignments: Iterable[Raw],
                          group_lookup: GroupLookup) -> PolicyRecord:
    return _policy(resource, "Administrative Template (Group Policy)", raw_assignments, group_lookup)


def fncFlattenCompliancePolicy(resource: Raw, raw_assignments: Iterable[Raw],
                               group_lookup: GroupLookup) -> PolicyRecord:
    return _policy(resource, "Compliance Policy", raw_assignments, group_lookup)


def _script(resource: Raw, script_type: str, bodies: List[ScriptBody],
            raw_assignments: Iterable[Raw], group_lookup: GroupLookup) -> ScriptRecord:
    return ScriptRecord(
        Name=_name(resource),
        Description=resource.get("description") or "",
        ScriptType=script_type,
        ScriptBodies=bodies,
        CreatedAt=resource.get("createdDateTime"),
        ModifiedAt=resource.get("lastModifiedDateTime"),
        RunAsAccount=resource.get("runAsAccount"),
        EnforceSignatureCheck=resource.get("enforceSignatureCheck"),
        RunAs32Bit=resource.get("runAs32Bit"),
        ID=resource.get("id"),
        Assignments=fncNormalizeAssignments(raw_assignments, group_lookup),
    )


def fncFlattenRemediationScript(resource: Raw, raw_assignments: Iterable[Raw],
                                group_lookup: GroupLookup) -> ScriptRecord:
    bodies = [
        ScriptBody("Detection", fncDecodeBase64(resource.get("detectionScriptContent"))),
        ScriptBody("Remediation", fncDecodeBase64(resource.get("remediationScriptContent"))),
    ]
    return _script(resource, "Remediation Script", bodies, raw_assignments, group_lookup)


def fncFlattenPlatformScript(resource: Raw, raw_assignments: Iterable[Raw],
                             group_lookup: GroupLookup,
                             script_content: Optional[str] = None) -> ScriptRecord:
    encoded = script_content if script_content is not None else resource.get("scriptContent")
    bodies = [ScriptBody("Script", fncDecodeBase64(encoded))]
    return _script(resource, "Platform Script", bodies, raw_assignments, group_lookup)
