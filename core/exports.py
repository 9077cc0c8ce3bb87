# ================================================================
# File     : exports.py
# Purpose  : Handle all export logic for EntraAdmins (CSV, JSON)
# Notes    : Called by EntraAdmins.py after the report finishes.
#            Export failures warn; the console report already exists.
# ================================================================

import pathlib
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.utils import fncPrintMessage, fncEnsureFolder, fncExportCSV, fncWriteJSON

SUPPORTED_FORMATS = {"csv", "json"}


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export list-of-lists from argparse
# Notes    : Unknown formats are dropped with a warning
# ================================================================
def fncExportList(args_export) -> set:
    if not args_export:
        return set()
    out = set()
    chunks = [args_export] if isinstance(args_export, str) else args_export
    for chunk in chunks:
        items = chunk if isinstance(chunk, (list, tuple)) else [chunk]
        for item in items:
            if not isinstance(item, str):
                continue
            for part in item.replace(",", " ").split():
                out.add(part.strip().lower())

    unknown = out - SUPPORTED_FORMATS
    if unknown:
        fncPrintMessage(f"Ignoring unsupported export format(s): {', '.join(sorted(unknown))}", "warn")
    return out & SUPPORTED_FORMATS


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build structured output path under ~/.entraadmins/reports/
# ================================================================
def fncGetExportPath(module_name: str, root: pathlib.Path = None):
    if root is None:
        root = pathlib.Path.home() / ".entraadmins" / "reports"
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    out_dir = root / ts / mod_slug
    fncEnsureFolder(out_dir)
    return out_dir


# ================================================================
# Function: fncExportReportCSV
# Purpose  : Write the flat report rows to one CSV file
# Notes    : UTF-8, header row, fixed column order. Returns False
#            (after a warning) when the file cannot be written.
# ================================================================
def fncExportReportCSV(path: str, rows: List[dict], headers: List[str]) -> bool:
    try:
        fncExportCSV(path, rows, headers=headers)
        return True
    except OSError as ex:
        fncPrintMessage(f"Could not write CSV '{path}': {ex}", "warn")
        return False


# ================================================================
# Function: fncExportSingleModule
# Purpose  : Handle all export formats for one module result
# Notes    : csv_headers maps a result key to its column order
# ================================================================
def fncExportSingleModule(module_name: str, data: dict, formats: set, root: pathlib.Path = None,
                          csv_headers: Optional[Dict[str, List[str]]] = None) -> Optional[pathlib.Path]:
    csv_headers = csv_headers or {}
    try:
        out_dir = fncGetExportPath(module_name, root)

        if "json" in formats:
            fncWriteJSON(str(out_dir / f"{module_name}.json"), data)

        if "csv" in formats:
            for key, val in data.items():
                if key == "summary":
                    continue
                headers = csv_headers.get(key)
                if isinstance(val, list) and (headers or (val and isinstance(val[0], dict))):
                    fncExportCSV(str(out_dir / f"{module_name}_{key}.csv"), val, headers=headers)
    except (OSError, TypeError, ValueError) as ex:
        fncPrintMessage(f"Export failed for {module_name}: {ex}", "warn")
        return None

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
