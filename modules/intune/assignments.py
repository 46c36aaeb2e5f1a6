# ================================================================
# File     : modules/intune/assignments.py
# Purpose  : Turn raw Intune assignment objects into readable
#            (TargetDescription, Intent) pairs
# Notes    : Group ids are resolved through a lookup callable so the
#            normaliser itself never talks to Graph.
# ================================================================

from typing import Any, Callable, Dict, Iterable, List, Optional

from core.models import Assignment
from core.utils import fncPrintMessage

GROUP_TARGET = "#microsoft.graph.groupAssignmentTarget"
EXCLUSION_GROUP_TARGET = "#microsoft.graph.exclusionGroupAssignmentTarget"
ALL_DEVICES_TARGET = "#microsoft.graph.allDevicesAssignmentTarget"
ALL_USERS_TARGET = "#microsoft.graph.allLicensedUsersAssignmentTarget"

UNRESOLVED_GROUP = "Unable to resolve group name"

GroupLookup = Callable[[str], Optional[str]]


# ================================================================
# Function: fncMakeGroupLookup
# Purpose : Build a groupId -> displayName resolver backed by Graph
# Notes   : Uncached; retries stay at debug level, errors propagate
#           to the caller
# ================================================================
def fncMakeGroupLookup(client) -> GroupLookup:
    def _lookup(group_id: str) -> Optional[str]:
        group = client.get(f"groups/{group_id}", params={"$select": "displayName"}, api_version="v1.0",
                           quiet=True)
        return (group or {}).get("displayName")
    return _lookup


def _resolve_group_name(group_id: str, group_lookup: GroupLookup) -> str:
    try:
        name = group_lookup(group_id)
    except Exception as ex:
        fncPrintMessage(f"Group lookup failed for {group_id}: {ex}", "debug")
        return UNRESOLVED_GROUP
    return name or UNRESOLVED_GROUP


# ================================================================
# Function: fncDescribeTarget
# Purpose : Describe one raw assignment target
# Notes   : Group-typed targets win over the all-devices/users checks
# ================================================================
def fncDescribeTarget(target: Dict[str, Any], group_lookup: GroupLookup) -> str:
    target = target or {}
    kind = target.get("@odata.type") or ""
    group_id = target.get("groupId")

    if group_id:
        name = _resolve_group_name(group_id, group_lookup)
        mode = "Exclude" if kind == EXCLUSION_GROUP_TARGET else "Include"
        return f"Group: {name} ({mode})"
    if kind == ALL_DEVICES_TARGET:
        return "All Devices"
    if kind == ALL_USERS_TARGET:
        return "All Users"
    return "Unknown"


# ================================================================
# Function: fncNormalizeAssignments
# Purpose : Normalise a resource's assignment list
# Notes   : One output per input, input order kept, no dedup
# ================================================================
def fncNormalizeAssignments(raw_assignments: Iterable[Dict[str, Any]],
                            group_lookup: GroupLookup) -> List[Assignment]:
    out: List[Assignment] = []
    for raw in raw_assignments or []:
        raw = raw or {}
        out.append(Assignment(
            TargetDescription=fncDescribeTarget(raw.get("target"), group_lookup),
            Intent=raw.get("intent"),
        ))
    return out
