# ================================================================
# File     : config.py
# Purpose  : Configuration management for EntraAdmins
# Notes    : Handles initial creation and loading of config
# ================================================================

import pathlib
from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

DEFAULT_HOME = pathlib.Path.home() / ".entraadmins"
DEFAULT_ROLE_FILTER = "admin"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "entraadmins_home": str(DEFAULT_HOME),
        "debug": False,
        "report": {
            "role_filter": DEFAULT_ROLE_FILTER,
            "parallel": 1,
            "strict": False,
        },
        "providers": {
            "entra": {
                "tenant_id": "",
                "client_id": "",
                "client_secret": "",
                "authority": "https://login.microsoftonline.com"
            }
        }
    }


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: str = None) -> dict:
    path = pathlib.Path(config_path or DEFAULT_HOME / "config.json")

    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        fncWriteJSON(str(path), fncDefaultConfig())
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : Uses ENV vars: ENTRA_TENANT_ID, ENTRA_CLIENT_ID, etc.
#           Missing sections are filled from the defaults.
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    cfg = fncDefaultConfig()
    loaded = fncReadJSON(config_path)
    for key, val in loaded.items():
        if isinstance(val, dict) and isinstance(cfg.get(key), dict):
            cfg[key].update(val)
        else:
            cfg[key] = val

    # Environment overrides (useful in CI/CD or container)
    entra = cfg["providers"].setdefault("entra", {})
    entra.update({
        "tenant_id": fncLoadEnv("ENTRA_TENANT_ID", entra.get("tenant_id")),
        "client_id": fncLoadEnv("ENTRA_CLIENT_ID", entra.get("client_id")),
        "client_secret": fncLoadEnv("ENTRA_CLIENT_SECRET", entra.get("client_secret")),
    })

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return cfg


# ================================================================
# Function: fncGetProviderConfig
# Purpose : Return config block for a specific provider
# Notes   : Only 'entra' is defined today
# ================================================================
def fncGetProviderConfig(cfg: dict, provider: str) -> dict:
    providers = cfg.get("providers", {})
    if provider not in providers:
        fncPrintMessage(f"Provider not found in config: {provider}", "warn")
        return {}
    return providers[provider]


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# Notes   : Flags left at None keep the configured value
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", None):
        cfg["debug"] = True

    report = cfg.setdefault("report", {})
    if getattr(args, "role_filter", None) is not None:
        report["role_filter"] = args.role_filter
    if getattr(args, "parallel", None) is not None:
        report["parallel"] = max(1, int(args.parallel))
    if getattr(args, "strict", None):
        report["strict"] = True
    return cfg


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# Notes   : Convenience helper for modules
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))
