#!/usr/bin/env python3
# ================================================================
# Tool     : IntuneBeagle
# Purpose  : Document an Intune tenant's Windows 10/11 configuration
# Notes    : One sequential pass per category, then CSV/JSON/HTML out.
# ================================================================

import sys
import argparse
import pathlib

import requests

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncToTable
from core.module_loader import fncRunAllCategories
from core.exports import fncExportRun
from modules.intune.categories import CATEGORIES
from handlers.graph.client import GraphClient, GraphError

VERSION = "v1.0"


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="IntuneBeagle",
        description="IntuneBeagle — Intune Windows configuration documenter"
    )

    parser.add_argument(
        "--config",
        help="Path to config.json (default: ~/.intunebeagle/config.json)",
        default=None
    )

    parser.add_argument(
        "--output",
        help="Folder that receives the timestamped run folder",
        default=None
    )

    parser.add_argument(
        "--skip",
        help="Comma-separated category keys to skip (see --list-categories)",
        default=""
    )

    parser.add_argument(
        "--top",
        type=int,
        default=None,
        help="How many recently modified items the dashboard lists (default: 10)"
    )

    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="Print the category keys and exit"
    )

    parser.add_argument(
        "--no-banner",
        action="store_true",
        help="Skip the ASCII banner"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug output"
    )

    return parser.parse_args(argv)


# ================================================================
# Function: fncInitClient
# Purpose  : Build the Graph client from config
# Notes    : Missing credentials are prompted for by GraphClient
# ================================================================
def fncInitClient(cfg: dict):
    graph_cfg = cfg.get("graph", {})
    if not all([graph_cfg.get("tenant_id"), graph_cfg.get("client_id"), graph_cfg.get("client_secret")]):
        fncPrintMessage("Missing Graph credentials — dropping into interactive mode…", "warn")

    return GraphClient(
        tenant_id=graph_cfg.get("tenant_id"),
        client_id=graph_cfg.get("client_id"),
        client_secret=graph_cfg.get("client_secret"),
        authority_host=graph_cfg.get("authority") or "https://login.microsoftonline.com",
        api_version=graph_cfg.get("api_version") or "beta",
    )


# ================================================================
# Function: fncPrintRunSummary
# Purpose  : Console table of per-category counts and status
# ================================================================
def fncPrintRunSummary(results: dict) -> None:
    labels = {c.key: c.label for c in CATEGORIES}
    rows = [
        {"Category": labels.get(k, k), "Items": len(r.records), "Status": r.status}
        for k, r in results.items()
    ]
    print(fncToTable(rows, headers=["Category", "Items", "Status"]))


def _top_n(cfg: dict) -> int:
    top = cfg.get("top_n")
    return 10 if top is None else int(top)


# ================================================================
# Function: main
# Purpose  : Main entry point
# Notes    : Exit 1 only when the run cannot start (auth/connection);
#            partial category failures still exit 0
# ================================================================
def main(argv=None) -> int:
    args = fncParseArguments(argv)

    if args.list_categories:
        print(fncToTable([{"Key": c.key, "Category": c.label, "Kind": c.kind} for c in CATEGORIES]))
        return 0

    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))

    if not args.no_banner:
        fncDisplayBanner(VERSION)
    fncPrintMessage("Unleashing IntuneBeagle on the tenant...", "info")
    fncPrintMessage("Debug output enabled.", "debug")

    try:
        client = fncInitClient(cfg)
    except (GraphError, requests.RequestException) as ex:
        fncPrintMessage(f"Could not connect to Microsoft Graph: {ex}", "error")
        return 1

    results = fncRunAllCategories(client, skip_list=cfg.get("skip"))
    fncPrintRunSummary(results)

    out_dir = fncExportRun(results, pathlib.Path(cfg["reports_root"]).expanduser(), top_n=_top_n(cfg))

    fncPrintMessage(f"Documentation complete. Open {out_dir / 'index.html'} for the dashboard.", "success")
    return 0


if __name__ == "__main__":
    sys.exit(main())
