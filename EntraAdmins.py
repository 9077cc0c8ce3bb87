#!/usr/bin/env python3
# ================================================================
# Tool     : EntraAdmins
# Purpose  : Report who holds (or may activate) Entra directory roles
# Notes    : Assigned + PIM-eligible members, resolved to names/types
# ================================================================

import os, argparse, pathlib

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug, fncGetProviderConfig
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncMask
from core.exports import fncExportList, fncExportReportCSV, fncExportSingleModule
from handlers.graph.client import GraphAPIError, GraphAuthError
from handlers.graph.directory import GraphDirectory, REQUIRED_PERMS
from modules.entra.role_admins import REPORT_COLUMNS, run as fncRunRoleAdmins

VERSION = "v1.0"


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments for EntraAdmins
# Notes    : Report settings default to None so config values apply
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="EntraAdmins",
        description="EntraAdmins - directory role administrators (assigned + eligible)"
    )

    parser.add_argument(
        "--role-filter",
        default=None,
        help="Case-insensitive regex/substring matched against role names (default: 'admin')"
    )

    parser.add_argument(
        "--output",
        default=None,
        help="Write the report as CSV to this path"
    )

    parser.add_argument(
        "--export",
        nargs="*",
        metavar="FMT[,FMT...]",
        help="Timestamped exports under ~/.entraadmins/reports: csv, json. Example: --export csv,json",
        default=None
    )

    parser.add_argument(
        "--parallel",
        type=int,
        default=None,
        help="Resolve principals with this many threads (default: 1 = sequential)"
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Abort on principal lookup errors other than 'not found'"
    )

    parser.add_argument(
        "--list-roles",
        action="store_true",
        help="Only list the role definitions matching the filter"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.json (default: ~/.entraadmins/config.json)"
    )

    parser.add_argument(
        "--no-banner",
        action="store_true",
        help="Skip the startup banner"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug output"
    )

    return parser.parse_args(argv)


# ================================================================
# Function: fncInitClient
# Purpose  : Initialise the Microsoft Graph client
# Notes    : If any credential is missing GraphClient prompts for it
# ================================================================
def fncInitClient(cfg: dict):
    from handlers.graph.client import GraphClient

    entra_cfg = fncGetProviderConfig(cfg, "entra")
    tenant_id = entra_cfg.get("tenant_id") or os.getenv("ENTRAADMINS_TENANT_ID")
    client_id = entra_cfg.get("client_id") or os.getenv("ENTRAADMINS_CLIENT_ID")
    client_secret = entra_cfg.get("client_secret") or os.getenv("ENTRAADMINS_CLIENT_SECRET")

    if not all([tenant_id, client_id, client_secret]):
        fncPrintMessage("Missing Entra credentials, dropping into interactive mode…", "warn")
    else:
        fncPrintMessage(f"Using client {fncMask(client_id)} in tenant {tenant_id}", "debug")

    return GraphClient(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        authority_host=entra_cfg.get("authority") or "https://login.microsoftonline.com",
    )


# ================================================================
# Function: main
# Purpose  : Main entry point for EntraAdmins execution
# Notes    : Returns a process exit code
# ================================================================
def main(argv=None) -> int:
    args = fncParseArguments(argv)

    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))

    if not args.no_banner:
        fncDisplayBanner(VERSION)
    fncPrintMessage("Debug output enabled.", "debug")

    report_cfg = cfg.get("report", {})
    run_args = argparse.Namespace(
        role_filter=report_cfg.get("role_filter", "admin"),
        parallel=report_cfg.get("parallel", 1),
        strict=bool(report_cfg.get("strict", False)),
        list_roles=args.list_roles,
    )

    try:
        client = fncInitClient(cfg)
    except GraphAuthError as ex:
        fncPrintMessage(f"Unable to authenticate to Microsoft Graph: {ex}", "error")
        fncPrintMessage(f"The app registration needs: {', '.join(REQUIRED_PERMS)}", "warn")
        return 1

    try:
        data = fncRunRoleAdmins(GraphDirectory(client), run_args)
    except GraphAPIError as ex:
        fncPrintMessage(f"Report aborted: {ex}", "error")
        if ex.status in (401, 403):
            fncPrintMessage(f"Check the app registration has: {', '.join(REQUIRED_PERMS)}", "warn")
        return 1

    if args.output and not args.list_roles:
        fncExportReportCSV(args.output, data["rows"], REPORT_COLUMNS)

    export_formats = fncExportList(args.export)
    if export_formats:
        reports_root = pathlib.Path(cfg.get("entraadmins_home") or pathlib.Path.home() / ".entraadmins") / "reports"
        fncExportSingleModule("role_admins", data, export_formats, reports_root,
                              csv_headers={"rows": REPORT_COLUMNS})

    fncPrintMessage("Done.", "success")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
