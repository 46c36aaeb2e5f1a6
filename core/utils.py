# ================================================================
# File     : utils.py
# Purpose  : Common helpers for IntuneBeagle (console, files, time, data)
# Notes    : British English; witty output
# ================================================================

import os
import re
import json
import time
import base64
import binascii
import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from colorama import Fore, Style, init as _colorama_init
from tabulate import tabulate

_colorama_init(autoreset=True)

DEBUG_ENABLED = False


# ================================================================
# Function: fncSetDebug
# Purpose : Globally enable/disable debug output
# Notes   : Called from main after parsing --debug
# ================================================================
def fncSetDebug(enabled: bool) -> None:
    global DEBUG_ENABLED
    DEBUG_ENABLED = bool(enabled)


# ================================================================
# Function: fncPrintMessage
# Purpose : Standardised console output with levels and colours
# Notes   : Levels: info, warn, error, success, debug
# ================================================================
def fncPrintMessage(message: str, level: str = "info") -> None:
    if level == "debug" and not DEBUG_ENABLED:
        return
    colours = {
        "info": Fore.CYAN,
        "warn": Fore.YELLOW,
        "error": Fore.RED,
        "success": Fore.GREEN,
        "debug": Fore.MAGENTA
    }
    prefix = {
        "info": "[•]",
        "warn": "[!]",
        "error": "[✗]",
        "success": "[✓]",
        "debug": "[∆]"
    }
    colour = colours.get(level, "")
    mark = prefix.get(level, "[ ]")
    print(f"{colour}{mark} {message}{Style.RESET_ALL}")


# ================================================================
# Function: fncDisplayBanner
# Purpose : Display IntuneBeagle ASCII banner in rainbow colours
# Notes   : Beagle mascot aligned to the right of the banner
# ================================================================
def fncDisplayBanner(version: str = "v1.0"):
    banner_lines = [
        " ___       _                    ____                   _      ",
        "|_ _|_ __ | |_ _   _ _ __   ___| __ )  ___  __ _  __ _| | ___ ",
        " | || '_ \\| __| | | | '_ \\ / _ \\  _ \\ / _ \\/ _` |/ _` | |/ _ \\",
        " | || | | | |_| |_| | | | |  __/ |_) |  __/ (_| | (_| | |  __/",
        "|___|_| |_|\\__|\\__,_|_| |_|\\___|____/ \\___|\\__,_|\\__, |_|\\___|",
        "                                                 |___/        ",
    ]

    beagle_lines = [
        "    __      ",
        "(\\,--------'()'--o",
        " (_    ___    /~\"",
        "  (_)_)  (_)_)   ",
    ]

    colours = [Fore.RED, Fore.YELLOW, Fore.GREEN, Fore.BLUE]

    def rainbow(text: str) -> str:
        """Cycle through colours for a rainbow effect"""
        out = ""
        for i, ch in enumerate(text):
            out += colours[i % len(colours)] + ch
        return out + Style.RESET_ALL

    print("\n")

    max_banner_len = max(len(line) for line in banner_lines)
    for i, line in enumerate(banner_lines):
        combined_line = line.ljust(max_banner_len + 5)
        if i < len(beagle_lines):
            combined_line += beagle_lines[i]
        print(rainbow(combined_line))

    print(f"{Fore.CYAN}\nIntuneBeagle {version} — 'Sniffing out every Windows policy in the tenant.'{Style.RESET_ALL}\n")


# ================================================================
# Function: fncEnsureFolder
# Purpose : Create a folder if it does not exist
# Notes   : Returns pathlib.Path object
# ================================================================
def fncEnsureFolder(path: str) -> pathlib.Path:
    p = pathlib.Path(path).expanduser().resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


# ================================================================
# Function: fncLoadEnv
# Purpose : Read environment variable with default
# Notes   : Strips quotes; returns default if empty
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name) or default
    if isinstance(val, str):
        return val.strip().strip('"').strip("'")
    return val


# ================================================================
# Function: fncReadJSON
# Purpose : Load JSON from file safely
# Notes   : Returns {} on failure when safe=True
# ================================================================
def fncReadJSON(path: str, safe: bool = True) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        if safe:
            fncPrintMessage(f"Could not read JSON '{path}': {ex}", "warn")
            return {}
        raise


# ================================================================
# Function: fncWriteJSON
# Purpose : Write data to JSON with nice formatting
# Notes   : Ensures parent folder exists; UTF-8; 2-space indent
# ================================================================
def fncWriteJSON(path: str, data: Dict[str, Any]) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    fncPrintMessage(f"Saved JSON → {p}", "success")


# ================================================================
# Function: fncRunStamp
# Purpose : Return a folder-safe UTC timestamp for a run
# Notes   : e.g. 20261018-164700
# ================================================================
def fncRunStamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


# ================================================================
# Function: fncParseDateTime
# Purpose : Parse a Graph ISO8601 timestamp
# Notes   : Handles trailing 'Z' and 7-digit fractions; None on failure
# ================================================================
def fncParseDateTime(val: Any) -> Optional[datetime]:
    if not val or not isinstance(val, str):
        return None
    s = val.strip().replace("Z", "+00:00")
    # Graph emits 100ns precision which fromisoformat rejects on older Pythons
    m = re.match(r"^(.*T[\d:]+)\.(\d+)(.*)$", s)
    if m:
        s = f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}{m.group(3)}"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ================================================================
# Function: fncDecodeBase64
# Purpose : Decode a base64 script payload to text
# Notes   : Empty string when absent or undecodable; strips a UTF-8 BOM
# ================================================================
def fncDecodeBase64(data: Optional[str]) -> str:
    if not data:
        return ""
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError):
        fncPrintMessage("Script payload was not valid base64, leaving it empty.", "debug")
        return ""
    return raw.decode("utf-8-sig", errors="replace")


# ================================================================
# Function: fncRetry
# Purpose : Simple retry wrapper with backoff
# Notes   : backoff in seconds; returns fn result or raises.
#           The final failure is only logged at debug: the caller
#           owns how a give-up is reported. quiet=True drops the
#           per-attempt warnings to debug as well.
# ================================================================
def fncRetry(fn, attempts: int = 3, backoff: float = 1.5, exceptions: Tuple = (Exception,), *args,
             quiet: bool = False, **kwargs):
    last_ex: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except exceptions as ex:
            last_ex = ex
            if attempt < attempts:
                sleep_for = backoff ** (attempt - 1)
                fncPrintMessage(f"Attempt {attempt}/{attempts} failed: {ex}. Retrying in {sleep_for:.1f}s…",
                                "debug" if quiet else "warn")
                time.sleep(sleep_for)
            else:
                fncPrintMessage(f"All {attempts} attempts failed: {ex}", "debug")
                raise
    if last_ex:
        raise last_ex


# ================================================================
# Function: fncSafeGet
# Purpose : Safe nested dictionary access
# Notes   : path like 'a.b.c'; returns default when missing
# ================================================================
def fncSafeGet(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    cur = data
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return default
    return cur


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None, max_rows: Optional[int] = None) -> str:
    rows = list(rows)
    if max_rows and len(rows) > max_rows:
        rows = rows[:max_rows]

    if not rows:
        return "(no data)"

    if isinstance(rows[0], dict):
        hdrs = headers or list(rows[0].keys())
        table_rows = [[r.get(h, "") for h in hdrs] for r in rows]
        return tabulate(table_rows, headers=hdrs, tablefmt="github")
    else:
        return tabulate(rows, headers=(headers or "firstrow"), tablefmt="github")


# ================================================================
# Function: fncMask
# Purpose : Mask sensitive strings (client secrets, tokens)
# Notes   : Keeps start/end visible; handles short strings
# ================================================================
def fncMask(value: Optional[str], show: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= show * 2:
        return "*" * len(value)
    return f"{value[:show]}{'*' * (len(value) - (show*2))}{value[-show:]}"
