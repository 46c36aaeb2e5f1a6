# ================================================================
# File     : core/reporting.py
# Purpose  : Build the HTML reports: one table per record set and a
#            summary dashboard (KPI cards + most recently changed)
# Notes    : Everything that reaches the page goes through _esc,
#            script bodies included.
# ================================================================

import re
import html
import json
import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.models import Assignment, ScriptRecord
from core.utils import fncParseDateTime

NO_DATA = "No data found."
_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


# ---------- tiny helpers ----------

def _esc(v: Any) -> str:
    return "" if v is None else html.escape(str(v))

def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(name).lower()).strip("-")

def _split_camel(name: str) -> str:
    s = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", str(name))
    return re.sub(r"\s+", " ", s).strip()

def _json_parse_maybe(val: Any) -> Tuple[bool, Any]:
    """Return (is_json, parsed_obj). Accept list directly, or a JSON string."""
    if isinstance(val, (list, tuple)):
        return True, val
    if isinstance(val, str):
        s = val.strip()
        if s.startswith("{") or s.startswith("["):
            try:
                return True, json.loads(s)
            except ValueError:
                return False, None
    return False, None

def _fmt_cell(val: Any) -> str:
    if isinstance(val, bool):
        return "Yes" if val else "No"
    return _esc(val)


# ---------- assignments cell ----------

def _assignment_pair(item: Any) -> Optional[Tuple[Any, Any]]:
    if isinstance(item, Assignment):
        return item.TargetDescription, item.Intent
    if isinstance(item, dict) and "TargetDescription" in item:
        return item.get("TargetDescription"), item.get("Intent")
    return None

def _assignments_html(val: Any) -> str:
    """
    Render assignments as '• <target> (<intent>)' lines.
    Accepts the in-memory tuple or its serialised JSON form; anything
    that does not parse is shown as-is.
    """
    is_json, parsed = _json_parse_maybe(val)
    if not is_json or not isinstance(parsed, (list, tuple)):
        return _esc(val)
    lines = []
    for item in parsed:
        pair = _assignment_pair(item)
        if pair is None:
            return _esc(val)
        target, intent = pair
        lines.append(f"• {_esc(target)} ({_esc(intent)})")
    return "<br>".join(lines)


# ---------- ordering ----------

# ================================================================
# Function: fncTopByModified
# Purpose : Most recently modified records first
# Notes   : sorted() is stable, so equal timestamps keep input order;
#           missing/garbled timestamps go to the bottom
# ================================================================
def fncTopByModified(records: Iterable[Any], n: int = 10) -> List[Any]:
    def _key(r):
        return fncParseDateTime(getattr(r, "ModifiedAt", None)) or _EPOCH
    return sorted(records, key=_key, reverse=True)[:max(n, 0)]


# ---------- base CSS ----------

def _base_css() -> str:
    return """
:root{
  --accent:#4fb3ff; --accent2:#1f7ae0;
  --text:#1b2330; --bg:#f5f7fb; --card:#ffffff; --border:#e3e8ef; --muted:#667085;
}
@media (prefers-color-scheme: dark){
  :root{ --bg:#0e1217; --card:#1b212a; --text:#e7edf7; --border:#2a3340; --muted:#9fb2cc; }
}
*{box-sizing:border-box} html,body{margin:0;padding:0}
body{font:15px/1.5 "Segoe UI",Roboto,Arial,system-ui;background:var(--bg);color:var(--text);}
.header{
  position:relative; background:linear-gradient(90deg,var(--accent2),var(--accent));
  color:#fff; padding:22px 28px; border-bottom:1px solid rgba(255,255,255,.18);
  box-shadow:0 4px 14px rgba(0,0,0,.25)
}
.header h1{margin:0;font-weight:800;letter-spacing:.3px;font-size:1.9rem}
.header h2{margin:4px 0 2px 0;font-weight:500;opacity:.95}
.header p{margin:4px 0 0 0;opacity:.85;font-size:.9rem}

.container{width:95%;max-width:1900px;margin:24px auto;background:var(--card);
border:1px solid var(--border);border-radius:12px;padding:22px 26px;box-shadow:0 10px 30px rgba(0,0,0,.20)}
h3{color:var(--accent);border-bottom:2px solid color-mix(in srgb,var(--accent) 60%, transparent);
padding-bottom:6px;margin:16px 0 8px 0;font-weight:700;letter-spacing:.2px}
.card{margin:18px 0}
.card h4{margin:0 0 8px 0;font-size:1.05rem}
.tablewrap{overflow-x:auto}
.empty{color:var(--muted);font-style:italic}

table{width:100%;border-collapse:separate;border-spacing:0;margin-top:8px;
border:1px solid var(--border);border-radius:10px;overflow:hidden;
background:color-mix(in srgb,var(--card) 92%, #000 8%)}
th,td{padding:10px 12px;border-bottom:1px solid var(--border);vertical-align:top;
word-break:break-word;overflow-wrap:anywhere;white-space:normal}
th{white-space:nowrap;background:linear-gradient(90deg,color-mix(in srgb,var(--accent2) 85%, #000 15%), var(--accent));
color:#fff;text-align:left;font-weight:700}
tr:nth-child(even) td{background:color-mix(in srgb,var(--card) 85%, #000 15%)}
tr:last-child td{border-bottom:none}
td.col-assignments{min-width:280px}
.footer{width:95%;max-width:1200px;margin:26px auto 12px auto;color:var(--muted);
text-align:center;font-size:.9rem}

/* Script source drawers */
.script-src{margin:10px 0}
.script-src > summary{
  cursor:pointer; padding:8px 12px; border:1px solid var(--border); border-radius:8px;
  background:color-mix(in srgb, var(--card) 96%, #000 4%); font-weight:600;
}
.script-src h5{margin:12px 0 4px 0}
.script-src pre{
  margin:0; padding:12px 14px; border:1px solid var(--border); border-radius:8px;
  background:color-mix(in srgb, var(--card) 94%, #000 6%);
  max-height:480px; overflow:auto; white-space:pre;
  font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, "Liberation Mono", monospace;
  font-size:.85rem; line-height:1.4;
}

/* ======== Dashboard cards layout ======== */
.grid{display:grid; gap:12px}
.grid.kpis{grid-template-columns:repeat(auto-fit,minmax(200px,1fr))}
.card-rounded{border-radius:12px; box-shadow:0 6px 18px rgba(0,0,0,.08); border:1px solid var(--border)}
.kpi{padding:14px 16px}
.kpi .label{color:var(--muted); font-weight:600}
.kpi .value{font-size:1.8rem; font-weight:800; margin-top:4px}
.kpi.warn .value{color:#f59e0b}
.links{list-style:none;padding:0;margin:0;display:flex;flex-wrap:wrap;gap:8px}
.links a{display:inline-block;padding:6px 12px;border-radius:999px;border:1px solid var(--border);
text-decoration:none;color:var(--text);font-weight:600}
.links a:hover{background:linear-gradient(90deg,var(--accent2),var(--accent));color:#fff;border-color:transparent}
"""


# ---------- page shell ----------

def _header_html(title: str, subtitle: Optional[str] = None) -> str:
    ts = datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    sub = f"<p>{_esc(subtitle)}</p>" if subtitle else ""
    return f"""
  <div class="header">
    <h1>IntuneBeagle Report</h1>
    <h2>{_esc(title)}</h2>
    {sub}
    <p>Generated on {_esc(ts)}</p>
  </div>
"""

def _page(title: str, body: str, subtitle: Optional[str] = None) -> str:
    return f"""<!DOCTYPE html>
<html lang="en"><head>
<meta charset="UTF-8"><title>IntuneBeagle - {_esc(title)}</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>{_base_css()}</style></head><body>
{_header_html(title, subtitle)}
<div class="container">
{body}
</div>
<div class="footer">
  <p>Generated by <b>IntuneBeagle</b> — "Sniffing out every Windows policy in the tenant."</p>
  <p>&copy; {datetime.datetime.now(datetime.timezone.utc).year} IntuneBeagle</p>
</div>
</body></html>"""


# ---------- table renderers ----------

def _schema_for(record: Any) -> List[str]:
    if hasattr(record, "field_names"):
        return record.field_names()
    return list(record.keys())

def _body_fields_for(record: Any) -> Sequence[str]:
    return getattr(record, "BODY_FIELDS", ())

def _value(record: Any, col: str) -> Any:
    if isinstance(record, dict):
        return record.get(col)
    return getattr(record, col, None)

def _table_html(records: Sequence[Any], columns: List[str], table_id: str) -> str:
    thead = "<tr>" + "".join(f"<th>{_esc(_split_camel(c))}</th>" for c in columns) + "</tr>"
    body_rows = []
    for r in records:
        tds = []
        for c in columns:
            val = _value(r, c)
            if c == "Assignments":
                tds.append(f"<td class='col-assignments'>{_assignments_html(val)}</td>")
            else:
                tds.append(f"<td>{_fmt_cell(val)}</td>")
        body_rows.append("<tr>" + "".join(tds) + "</tr>")
    return f"""
    <div class="tablewrap">
      <table id="tbl-{_slug(table_id)}">
        <thead>{thead}</thead>
        <tbody>{''.join(body_rows)}</tbody>
      </table>
    </div>"""

def _script_sections_html(records: Sequence[Any]) -> str:
    parts = []
    for r in records:
        bodies = _value(r, "ScriptBodies") or ()
        blocks = []
        for b in bodies:
            label = b.Label if hasattr(b, "Label") else (b or {}).get("Label")
            content = b.Content if hasattr(b, "Content") else (b or {}).get("Content")
            blocks.append(f"<h5>{_esc(label)}</h5><pre>{_esc(content)}</pre>")
        inner = "".join(blocks) or "<p class='empty'>No script content.</p>"
        parts.append(
            f"<details class='script-src'><summary>{_esc(_value(r, 'Name'))}</summary>{inner}</details>"
        )
    return "\n".join(parts)


# ================================================================
# Function: fncRenderTableHTML
# Purpose : Full HTML document for one homogeneous record set
# Notes   : Columns follow the record's declared schema; body fields
#           are never tabulated. Script sources are appended below
#           the table when show_scripts (default: title mentions script).
# ================================================================
def fncRenderTableHTML(title: str, records: Sequence[Any],
                       excluded_columns: Iterable[str] = (),
                       show_scripts: Optional[bool] = None) -> str:
    records = list(records or [])
    if not records:
        body = f"<h3>{_esc(title)}</h3>\n<p class='empty'>{NO_DATA}</p>"
        return _page(title, body)

    first = records[0]
    hidden = set(excluded_columns) | set(_body_fields_for(first)) | set(ScriptRecord.BODY_FIELDS)
    columns = [c for c in _schema_for(first) if c not in hidden]

    if show_scripts is None:
        show_scripts = "script" in title.lower()

    body = f"<h3>{_esc(title)}</h3>\n<p>{len(records)} item(s)</p>\n{_table_html(records, columns, title)}"
    if show_scripts:
        body += f"\n<h3>Script Content</h3>\n{_script_sections_html(records)}"
    return _page(title, body)


# ---------- summary dashboard ----------

def _render_kpis(counts: Dict[str, int], labels: Dict[str, str], problems: Iterable[str]) -> str:
    problems = set(problems or ())
    blocks = []
    for key, value in counts.items():
        tone = " warn" if key in problems else ""
        blocks.append(f"""
        <div class="card-rounded kpi{tone}">
          <div class="label">{_esc(labels.get(key, _split_camel(key.replace('_', ' ')).title()))}</div>
          <div class="value">{_esc(value)}</div>
        </div>""")
    return f'<div class="grid kpis">{"".join(blocks)}</div>'

def _ranked_table(records: Sequence[Any], type_field: str, table_id: str) -> str:
    if not records:
        return f"<p class='empty'>{NO_DATA}</p>"
    thead = f"<tr><th>#</th><th>Name</th><th>{_esc(_split_camel(type_field))}</th><th>Modified At</th></tr>"
    rows = []
    for i, r in enumerate(records, 1):
        rows.append(
            f"<tr><td>{i}</td><td>{_esc(_value(r, 'Name'))}</td>"
            f"<td>{_esc(_value(r, type_field))}</td><td>{_esc(_value(r, 'ModifiedAt'))}</td></tr>"
        )
    return f"""
    <div class="tablewrap">
      <table id="tbl-{_slug(table_id)}">
        <thead>{thead}</thead>
        <tbody>{''.join(rows)}</tbody>
      </table>
    </div>"""

def _links_html(links: Optional[Dict[str, str]]) -> str:
    if not links:
        return ""
    items = "".join(f'<li><a href="{_esc(href)}">{_esc(label)}</a></li>' for label, href in links.items())
    return f"<h3>Reports</h3>\n<ul class='links'>{items}</ul>"


# ================================================================
# Function: fncRenderSummaryHTML
# Purpose : Dashboard with one card per category and two top-N tables
# Notes   : top_* are expected pre-ranked (see fncTopByModified)
# ================================================================
def fncRenderSummaryHTML(counts: Dict[str, int], top_policies: Sequence[Any], top_scripts: Sequence[Any],
                         links: Optional[Dict[str, str]] = None,
                         labels: Optional[Dict[str, str]] = None,
                         problems: Iterable[str] = ()) -> str:
    labels = labels or {}
    body = f"""
<h3>Windows Configuration Overview</h3>
{_render_kpis(counts, labels, problems)}
{_links_html(links)}
<div class="card">
  <h3>Recently Modified Policies (Top {len(top_policies)})</h3>
  {_ranked_table(top_policies, "Type", "top-policies")}
</div>
<div class="card">
  <h3>Recently Modified Scripts (Top {len(top_scripts)})</h3>
  {_ranked_table(top_scripts, "ScriptType", "top-scripts")}
</div>"""
    return _page("Summary Dashboard", body, "Intune Windows 10/11 configuration at a glance")
