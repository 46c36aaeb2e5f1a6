# ================================================================
# File     : config.py
# Purpose  : Configuration management for IntuneBeagle
# Notes    : Handles initial creation, loading, and saving of config
# ================================================================

import pathlib
from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

BEAGLE_HOME = pathlib.Path.home() / ".intunebeagle"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "debug": False,
        "reports_root": str(BEAGLE_HOME / "reports"),
        "top_n": 10,
        "skip": [],
        "graph": {
            "tenant_id": "",
            "client_id": "",
            "client_secret": "",
            "authority": "https://login.microsoftonline.com",
            "api_version": "beta"
        }
    }


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: str = None) -> dict:
    path = pathlib.Path(config_path or BEAGLE_HOME / "config.json")

    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        cfg = fncDefaultConfig()
        fncWriteJSON(str(path), cfg)
        return fncApplyEnvOverrides(cfg)
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : Missing keys are filled from the defaults
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    loaded = fncReadJSON(config_path)

    cfg = fncDefaultConfig()
    graph = dict(cfg["graph"])
    graph.update(loaded.get("graph") or {})
    cfg.update({k: v for k, v in loaded.items() if k != "graph"})
    cfg["graph"] = graph

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return fncApplyEnvOverrides(cfg)


# ================================================================
# Function: fncApplyEnvOverrides
# Purpose : Let environment variables win over the config file
# Notes   : INTUNEBEAGLE_TENANT_ID, _CLIENT_ID, _CLIENT_SECRET
# ================================================================
def fncApplyEnvOverrides(cfg: dict) -> dict:
    graph = cfg.setdefault("graph", {})
    graph["tenant_id"] = fncLoadEnv("INTUNEBEAGLE_TENANT_ID", graph.get("tenant_id"))
    graph["client_id"] = fncLoadEnv("INTUNEBEAGLE_CLIENT_ID", graph.get("client_id"))
    graph["client_secret"] = fncLoadEnv("INTUNEBEAGLE_CLIENT_SECRET", graph.get("client_secret"))
    return cfg


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# Notes   : Handles --debug, --output, --top and --skip
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", False):
        cfg["debug"] = True
    if getattr(args, "output", None):
        cfg["reports_root"] = args.output
    if getattr(args, "top", None) is not None:
        cfg["top_n"] = int(args.top)
    skip = getattr(args, "skip", None)
    if skip:
        cfg["skip"] = [s.strip() for s in skip.split(",") if s.strip()]
    return cfg


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))
