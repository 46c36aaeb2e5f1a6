# ================================================================
# File     : exports.py
# Purpose  : Write a run's artifacts (CSV, JSON, HTML) to disk
# Notes    : Called by IntuneBeagle.py once every category is in.
#            Nested fields are serialised only here, at the file edge.
# ================================================================

import csv
import json
import pathlib
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.models import CategoryResult, POLICY_FIELDS, SCRIPT_FIELDS
from core.utils import fncPrintMessage, fncEnsureFolder, fncWriteJSON, fncRunStamp
from core.reporting import fncRenderTableHTML, fncRenderSummaryHTML, fncTopByModified
from modules.intune.categories import CATEGORY_BY_KEY, KIND_POLICY, KIND_SCRIPT

POLICIES_CSV = "Windows_Policies.csv"
SCRIPTS_CSV = "Windows_Scripts.csv"
POLICIES_HTML = "Windows_Policies.html"
REMEDIATION_HTML = "Remediation_Scripts.html"
PLATFORM_HTML = "Platform_Scripts.html"
INVENTORY_JSON = "IntuneBeagle_Inventory.json"
SUMMARY_HTML = "index.html"


# ================================================================
# Function: fncGetRunFolder
# Purpose  : Create <root>/<UTC timestamp> for this run
# ================================================================
def fncGetRunFolder(root: pathlib.Path, stamp: Optional[str] = None) -> pathlib.Path:
    return fncEnsureFolder(pathlib.Path(root) / (stamp or fncRunStamp()))


def _csv_value(val: Any) -> Any:
    if isinstance(val, tuple):
        return json.dumps([v.to_dict() for v in val], separators=(",", ":"), ensure_ascii=False)
    if val is None:
        return ""
    return val


# ================================================================
# Function: fncExportRecordsCSV
# Purpose  : Save records to CSV with the declared schema as header
# Notes    : Assignments / ScriptBodies become compact JSON strings
# ================================================================
def fncExportRecordsCSV(path: str, records: Iterable[Any], fields: Sequence[str]) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    rows = list(records)
    with open(p, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(list(fields))
        for r in rows:
            w.writerow([_csv_value(getattr(r, name, None)) for name in fields])
    level = "success" if rows else "warn"
    fncPrintMessage(f"Saved CSV ({len(rows)} row(s)) → {p}", level)


# ================================================================
# Function: fncExportRecordsJSON
# Purpose  : Whole inventory (records + per-category status) as JSON
# ================================================================
def fncExportRecordsJSON(path: str, results: Dict[str, CategoryResult]) -> None:
    fncWriteJSON(path, {
        "generated": fncRunStamp(),
        "categories": {key: res.to_dict() for key, res in results.items()},
    })


# ================================================================
# Function: fncWriteHTML
# Purpose  : Write a rendered HTML document
# ================================================================
def fncWriteHTML(path: str, html_doc: str) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        f.write(html_doc)
    fncPrintMessage(f"HTML report written to {p}", "success")


def _records_of_kind(results: Dict[str, CategoryResult], kind: str) -> List[Any]:
    out: List[Any] = []
    for key, res in results.items():
        cat = CATEGORY_BY_KEY.get(key)
        if cat and cat.kind == kind:
            out.extend(res.records)
    return out


# ================================================================
# Function: fncExportRun
# Purpose  : Write all six artifacts plus the summary dashboard
# Notes    : Returns the run folder
# ================================================================
def fncExportRun(results: Dict[str, CategoryResult], root: pathlib.Path,
                 top_n: int = 10, stamp: Optional[str] = None) -> pathlib.Path:
    out_dir = fncGetRunFolder(root, stamp)

    policies = _records_of_kind(results, KIND_POLICY)
    scripts = _records_of_kind(results, KIND_SCRIPT)
    remediation = results.get("remediation_scripts")
    platform = results.get("platform_scripts")

    fncExportRecordsCSV(str(out_dir / POLICIES_CSV), policies, POLICY_FIELDS)
    fncExportRecordsCSV(str(out_dir / SCRIPTS_CSV), scripts, SCRIPT_FIELDS)

    fncWriteHTML(str(out_dir / POLICIES_HTML),
                 fncRenderTableHTML("Windows Configuration Policies", policies))
    fncWriteHTML(str(out_dir / REMEDIATION_HTML),
                 fncRenderTableHTML("Remediation Scripts", remediation.records if remediation else []))
    fncWriteHTML(str(out_dir / PLATFORM_HTML),
                 fncRenderTableHTML("Platform Scripts", platform.records if platform else []))

    fncExportRecordsJSON(str(out_dir / INVENTORY_JSON), results)

    counts = {key: len(res.records) for key, res in results.items()}
    labels = {key: CATEGORY_BY_KEY[key].label for key in results if key in CATEGORY_BY_KEY}
    links = {
        "Policies (CSV)": POLICIES_CSV,
        "Scripts (CSV)": SCRIPTS_CSV,
        "Policies (HTML)": POLICIES_HTML,
        "Remediation Scripts (HTML)": REMEDIATION_HTML,
        "Platform Scripts (HTML)": PLATFORM_HTML,
        "Inventory (JSON)": INVENTORY_JSON,
    }
    summary = fncRenderSummaryHTML(
        counts,
        fncTopByModified(policies, top_n),
        fncTopByModified(scripts, top_n),
        links=links,
        labels=labels,
        problems=[k for k, r in results.items() if not r.ok],
    )
    fncWriteHTML(str(out_dir / SUMMARY_HTML), summary)

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
