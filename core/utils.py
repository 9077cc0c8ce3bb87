# ================================================================
# File     : utils.py
# Purpose  : Common helpers for EntraAdmins (console, files, retries)
# Notes    : All console output goes through fncPrintMessage
# ================================================================

import os
import json
import csv
import time
import uuid
import pathlib
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
# Purpose : Display the EntraAdmins banner
# Notes   : Alternates two colours per line
# ================================================================
def fncDisplayBanner(version: str = "v1.0") -> None:
    banner_lines = [
        " ___     _             _      _           _         ",
        "| __|_ _| |_ _ _ __ _ /_\\  __| |_ __  (_)_ _  ___",
        "| _|| ' \\  _| '_/ _` / _ \\/ _` | '  \\ | | ' \\(_-<",
        "|___|_||_\\__|_| \\__,_/_/ \\_\\__,_|_|_|_||_|_||_/__/",
    ]
    colours = [Fore.CYAN, Fore.BLUE]

    print()
    for i, line in enumerate(banner_lines):
        print(f"{colours[i % len(colours)]}{line}{Style.RESET_ALL}")
    print(f"{Fore.CYAN}\nEntraAdmins {version} - who holds the keys to your tenant?{Style.RESET_ALL}\n")


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
# Notes   : Strips quotes; returns default if unset
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name, default)
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
# Function: fncExportCSV
# Purpose : Save list[dict] or list[list] to CSV
# Notes   : Dict rows use the given headers in order, otherwise
#           the sorted union of keys. Header row is always written
#           when headers are known, even for an empty row set.
# ================================================================
def fncExportCSV(path: str, rows: Iterable[Any], headers: Optional[List[str]] = None) -> None:
    rows = list(rows)
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if not rows and not headers:
        with open(p, "w", newline="", encoding="utf-8"):
            pass
        fncPrintMessage(f"Created empty CSV → {p}", "warn")
        return

    if not rows or isinstance(rows[0], dict):
        fieldnames = headers or sorted({k for r in rows for k in r.keys()})
        with open(p, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=fieldnames)
            w.writeheader()
            for r in rows:
                w.writerow({k: r.get(k, "") for k in fieldnames})
    else:
        with open(p, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            if headers:
                w.writerow(headers)
            for r in rows:
                w.writerow(list(r))

    fncPrintMessage(f"Saved CSV → {p} ({len(rows)} rows)", "success")


# ================================================================
# Function: fncRetry
# Purpose : Simple retry wrapper with backoff
# Notes   : Exceptions listed in no_retry are re-raised at once
# ================================================================
def fncRetry(fn, attempts: int = 3, backoff: float = 1.5,
             exceptions: Tuple = (Exception,), no_retry: Tuple = ()):
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except no_retry:
            raise
        except exceptions as ex:
            if attempt < attempts:
                sleep_for = backoff ** (attempt - 1)
                fncPrintMessage(f"Attempt {attempt}/{attempts} failed: {ex}. Retrying in {sleep_for:.1f}s…", "warn")
                time.sleep(sleep_for)
            else:
                fncPrintMessage(f"All {attempts} attempts failed: {ex}", "error")
                raise


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None) -> str:
    rows = list(rows)
    if not rows:
        return "(no data)"

    if isinstance(rows[0], dict):
        hdrs = headers or sorted({k for r in rows for k in r.keys()})
        table_rows = [[r.get(h, "") for h in hdrs] for r in rows]
    else:
        hdrs = headers or "firstrow"
        table_rows = rows

    return tabulate(table_rows, headers=hdrs, tablefmt="github")


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


# ================================================================
# Function: fncNewRunId
# Purpose : Generate a short unique run identifier
# Notes   : Useful for correlating logs and outputs
# ================================================================
def fncNewRunId(prefix: str = "run") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
