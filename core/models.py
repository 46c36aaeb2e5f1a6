# ================================================================
# File     : core/models.py
# Purpose  : Normalised record shapes for Windows policies & scripts
# Notes    : Declared field order drives CSV headers and HTML columns.
#            Records are frozen; AssignmentCount is derived, never set.
# ================================================================

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

WINDOWS_PLATFORM = "Windows 10/11"

STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Assignment:
    TargetDescription: str
    Intent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"TargetDescription": self.TargetDescription, "Intent": self.Intent}


@dataclass(frozen=True)
class ScriptBody:
    Label: str
    Content: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"Label": self.Label, "Content": self.Content}


class _Record:
    """Shared behaviour for both record kinds."""

    BODY_FIELDS: Tuple[str, ...] = ()

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        """Structured form; nested value objects become plain dicts."""
        out: Dict[str, Any] = {}
        for name in self.field_names():
            val = getattr(self, name)
            if isinstance(val, tuple):
                val = [v.to_dict() if hasattr(v, "to_dict") else v for v in val]
            out[name] = val
        return out


@dataclass(frozen=True)
class PolicyRecord(_Record):
    Name: str
    Description: str
    Type: str
    Platform: str = WINDOWS_PLATFORM
    CreatedAt: Optional[str] = None
    ModifiedAt: Optional[str] = None
    ID: Optional[str] = None
    AssignmentCount: int = field(init=False)
    Assignments: Tuple[Assignment, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "Assignments", tuple(self.Assignments))
        object.__setattr__(self, "AssignmentCount", len(self.Assignments))


@dataclass(frozen=True)
class ScriptRecord(_Record):
    Name: str
    Description: str
    ScriptType: str
    ScriptBodies: Tuple[ScriptBody, ...] = ()
    CreatedAt: Optional[str] = None
    ModifiedAt: Optional[str] = None
    RunAsAccount: Optional[str] = None
    EnforceSignatureCheck: Optional[bool] = None
    RunAs32Bit: Optional[bool] = None
    ID: Optional[str] = None
    AssignmentCount: int = field(init=False)
    Assignments: Tuple[Assignment, ...] = ()

    BODY_FIELDS = ("ScriptBodies",)

    def __post_init__(self):
        object.__setattr__(self, "ScriptBodies", tuple(self.ScriptBodies))
        object.__setattr__(self, "Assignments", tuple(self.Assignments))
        object.__setattr__(self, "AssignmentCount", len(self.Assignments))


POLICY_FIELDS = PolicyRecord.field_names()
SCRIPT_FIELDS = ScriptRecord.field_names()


@dataclass
class CategoryResult:
    """Outcome of collecting one category: records plus how the pass went."""

    category: str
    records: List[Any] = field(default_factory=list)
    status: str = STATUS_COMPLETE
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "status": self.status,
            "error": self.error,
            "count": len(self.records),
            "records": [r.to_dict() for r in self.records],
        }
