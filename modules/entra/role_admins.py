# ================================================================
# File     : modules/entra/role_admins.py
# Purpose  : Directory-role administrators report (Assigned + Eligible)
# Notes    : Resolver -> Collector -> Aggregator. The directory is
#            injected; nothing here talks to Graph directly.
# ================================================================

import re
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from handlers.graph.client import GraphNotFoundError

CATEGORY_USER = "User"
CATEGORY_SERVICE_PRINCIPAL = "ServicePrincipal"
CATEGORY_MANAGED_IDENTITY = "ManagedIdentity"
CATEGORY_GROUP = "Group"
CATEGORY_UNKNOWN = "Unknown"

KIND_ASSIGNED = "Assigned"
KIND_ELIGIBLE = "Eligible"

MANAGED_IDENTITY_TAG = "ManagedIdentity"
UNKNOWN_NAME = "Unknown"

REPORT_COLUMNS = ["RoleName", "Name", "ID", "Type", "RoleType"]


# ----------------------- Data model -----------------------

@dataclass(frozen=True)
class RoleDefinition:
    id: str
    displayName: str

    @classmethod
    def from_graph(cls, obj) -> "RoleDefinition":
        if isinstance(obj, cls):
            return obj
        return cls(id=obj.get("id"), displayName=obj.get("displayName") or "")


@dataclass(frozen=True)
class MembershipRecord:
    roleId: str
    principalId: str
    kind: str


@dataclass(frozen=True)
class ResolvedPrincipal:
    name: str
    category: str


UNKNOWN_PRINCIPAL = ResolvedPrincipal(name=UNKNOWN_NAME, category=CATEGORY_UNKNOWN)


@dataclass(frozen=True)
class ReportRow:
    roleName: str
    principalName: str
    principalId: str
    principalCategory: str
    membershipKind: str

    def as_dict(self) -> Dict[str, str]:
        """Flat record keyed by the exported column names."""
        return {
            "RoleName": self.roleName,
            "Name": self.principalName,
            "ID": self.principalId,
            "Type": self.principalCategory,
            "RoleType": self.membershipKind,
        }


# ----------------------- Principal Resolver -----------------------

class PrincipalResolver:
    """
    Classify an opaque principal id by probing users, then service
    principals, then groups, stopping at the first hit.

    resolve() never raises unless strict=True, in which case failures
    other than "not found" propagate. Results are memoised for the
    lifetime of the resolver, so one resolver == one run.
    """

    def __init__(self, directory, strict: bool = False, cache: bool = True):
        self.directory = directory
        self.strict = strict
        self._cache: Optional[Dict[str, Future]] = {} if cache else None
        self._lock = threading.Lock()
        self.probes = [
            self._probe_user,
            self._probe_service_principal,
            self._probe_group,
        ]

    def _probe_user(self, principal_id: str) -> Optional[ResolvedPrincipal]:
        obj = self.directory.lookup_user(principal_id)
        if obj is None:
            return None
        return ResolvedPrincipal(_display_name(obj, principal_id), CATEGORY_USER)

    def _probe_service_principal(self, principal_id: str) -> Optional[ResolvedPrincipal]:
        obj = self.directory.lookup_service_principal(principal_id)
        if obj is None:
            return None
        tags = obj.get("tags") or []
        category = CATEGORY_MANAGED_IDENTITY if MANAGED_IDENTITY_TAG in tags else CATEGORY_SERVICE_PRINCIPAL
        return ResolvedPrincipal(_display_name(obj, principal_id), category)

    def _probe_group(self, principal_id: str) -> Optional[ResolvedPrincipal]:
        obj = self.directory.lookup_group(principal_id)
        if obj is None:
            return None
        return ResolvedPrincipal(_display_name(obj, principal_id), CATEGORY_GROUP)

    def _classify(self, principal_id: str) -> ResolvedPrincipal:
        for probe in self.probes:
            try:
                found = probe(principal_id)
            except GraphNotFoundError:
                continue
            except Exception as ex:
                if self.strict:
                    raise
                fncPrintMessage(f"Lookup {probe.__name__.replace('_probe_', '')} failed for {principal_id}: {ex}", "warn")
                continue
            if found is not None:
                return found
        fncPrintMessage(f"Principal {principal_id} did not resolve as user, service principal or group", "debug")
        return UNKNOWN_PRINCIPAL

    def resolve(self, principal_id: str) -> ResolvedPrincipal:
        if self._cache is None:
            return self._classify(principal_id)

        # first caller for an id classifies it; concurrent callers wait on its Future
        with self._lock:
            pending = self._cache.get(principal_id)
            owner = pending is None
            if owner:
                pending = Future()
                self._cache[principal_id] = pending

        if owner:
            try:
                pending.set_result(self._classify(principal_id))
            except BaseException as ex:
                pending.set_exception(ex)
                raise
        return pending.result()


def _display_name(obj: Dict[str, Any], fallback: str) -> str:
    return obj.get("displayName") or fallback


# ----------------------- Role Membership Collector -----------------------

class RoleMembershipCollector:
    """Assigned then eligible members of one role, each with its resolved principal."""

    def __init__(self, directory, resolver: PrincipalResolver, workers: int = 1):
        self.directory = directory
        self.resolver = resolver
        self.workers = max(1, int(workers or 1))

    def _records(self, role_id: str) -> List[MembershipRecord]:
        assigned = self.directory.list_assignments(role_id) or []
        eligible = self.directory.list_eligibilities(role_id) or []

        records = []
        for kind, rows in ((KIND_ASSIGNED, assigned), (KIND_ELIGIBLE, eligible)):
            for r in rows:
                pid = r.get("principalId")
                if not pid:
                    fncPrintMessage(f"Skipping {kind.lower()} record without principalId on role {role_id}", "debug")
                    continue
                records.append(MembershipRecord(roleId=role_id, principalId=pid, kind=kind))
        return records

    def collect_for_role(self, role_id: str) -> List[Tuple[MembershipRecord, ResolvedPrincipal]]:
        records = self._records(role_id)
        ids = [rec.principalId for rec in records]

        if self.workers > 1 and len(ids) > 1:
            # map() yields in submission order
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                principals = list(executor.map(self.resolver.resolve, ids))
        else:
            principals = [self.resolver.resolve(pid) for pid in ids]

        return list(zip(records, principals))


# ----------------------- Report Aggregator -----------------------

def _filter_roles(role_filter: str, role_definitions) -> List[RoleDefinition]:
    """Case-insensitive regex search on displayName; bad patterns match literally."""
    roles = [RoleDefinition.from_graph(d) for d in role_definitions or []]
    pattern_text = role_filter or ""
    try:
        pattern = re.compile(pattern_text, re.IGNORECASE)
    except re.error as ex:
        fncPrintMessage(f"Role filter '{pattern_text}' is not a valid regex ({ex}); matching it literally", "warn")
        pattern = re.compile(re.escape(pattern_text), re.IGNORECASE)
    return [r for r in roles if pattern.search(r.displayName)]


class ReportAggregator:
    def __init__(self, collector: RoleMembershipCollector):
        self.collector = collector

    def iter_role_rows(self, roles: List[RoleDefinition]) -> Iterator[Tuple[RoleDefinition, List[ReportRow]]]:
        """Yield (role, rows) per role in the given order."""
        for role in roles:
            fncPrintMessage(f"Collecting members of '{role.displayName}' ({role.id})", "debug")
            rows = [
                ReportRow(
                    roleName=role.displayName,
                    principalName=principal.name,
                    principalId=record.principalId,
                    principalCategory=principal.category,
                    membershipKind=record.kind,
                )
                for record, principal in self.collector.collect_for_role(role.id)
            ]
            yield role, rows

    def build_report(self, role_filter: str, role_definitions) -> List[ReportRow]:
        report: List[ReportRow] = []
        for _, rows in self.iter_role_rows(_filter_roles(role_filter, role_definitions)):
            report.extend(rows)
        return report


def build_report(role_filter: str, role_definitions, directory,
                 workers: int = 1, strict: bool = False) -> List[ReportRow]:
    """One-shot report with a fresh run-scoped resolver."""
    resolver = PrincipalResolver(directory, strict=strict)
    collector = RoleMembershipCollector(directory, resolver, workers=workers)
    return ReportAggregator(collector).build_report(role_filter, role_definitions)


# ----------------------- Summary -----------------------

def _summarise(rows: List[ReportRow], roles: List[RoleDefinition]) -> Dict[str, Any]:
    by_type = Counter(r.principalCategory for r in rows)
    by_kind = Counter(r.membershipKind for r in rows)
    return {
        "Matched Roles": len(roles),
        "Rows": len(rows),
        "Distinct Principals": len({r.principalId for r in rows}),
        "Assigned": by_kind.get(KIND_ASSIGNED, 0),
        "Eligible": by_kind.get(KIND_ELIGIBLE, 0),
        CATEGORY_USER: by_type.get(CATEGORY_USER, 0),
        CATEGORY_SERVICE_PRINCIPAL: by_type.get(CATEGORY_SERVICE_PRINCIPAL, 0),
        CATEGORY_MANAGED_IDENTITY: by_type.get(CATEGORY_MANAGED_IDENTITY, 0),
        CATEGORY_GROUP: by_type.get(CATEGORY_GROUP, 0),
        CATEGORY_UNKNOWN: by_type.get(CATEGORY_UNKNOWN, 0),
    }


# ----------------------- Main -----------------------

def run(directory, args) -> Dict[str, Any]:
    run_id = fncNewRunId("roleadmins")
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    role_filter = getattr(args, "role_filter", None) or ""
    fncPrintMessage(f"Running directory role admin report (run={run_id}, filter='{role_filter}')", "info")

    definitions = directory.list_role_definitions() or []
    roles = _filter_roles(role_filter, definitions)
    fncPrintMessage(f"{len(roles)} of {len(definitions)} role definitions match '{role_filter}'", "info")

    data: Dict[str, Any] = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": ts,
        "role_filter": role_filter,
        "roles": [{"id": r.id, "displayName": r.displayName} for r in roles],
        "rows": [],
    }

    if getattr(args, "list_roles", False):
        print(fncToTable(data["roles"], headers=["displayName", "id"]))
        data["summary"] = _summarise([], roles)
        return data

    resolver = PrincipalResolver(directory, strict=bool(getattr(args, "strict", False)))
    collector = RoleMembershipCollector(directory, resolver, workers=getattr(args, "parallel", 1) or 1)
    aggregator = ReportAggregator(collector)

    report: List[ReportRow] = []
    for role, rows in aggregator.iter_role_rows(roles):
        fncPrintMessage(f"{role.displayName} ({len(rows)} members)", "info")
        print(fncToTable([r.as_dict() for r in rows], headers=REPORT_COLUMNS[1:]))
        print()
        report.extend(rows)

    summary = _summarise(report, roles)
    fncPrintMessage("Summary", "info")
    print(fncToTable([[k, v] for k, v in summary.items()], headers=["Metric", "Count"]))

    data["summary"] = summary
    data["rows"] = [r.as_dict() for r in report]

    fncPrintMessage(f"Role admin report complete: {len(report)} rows across {len(roles)} roles.", "success")
    return data
