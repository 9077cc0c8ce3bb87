"""Shared fixtures: an in-memory directory standing in for Microsoft Graph."""

import pytest

from core.utils import fncSetDebug


class FakeDirectory:
    """In-memory directory with call recording.

    ``failures`` maps a lookup kind ("user", "service_principal", "group",
    "assignments", "eligibilities") to an exception raised on every call.
    """

    def __init__(self, roles=None, assignments=None, eligibilities=None,
                 users=None, service_principals=None, groups=None, failures=None):
        self.roles = roles or []
        self.assignments = assignments or {}
        self.eligibilities = eligibilities or {}
        self.users = users or {}
        self.service_principals = service_principals or {}
        self.groups = groups or {}
        self.failures = failures or {}
        self.calls: list[tuple] = []

    def _record(self, kind, *args):
        self.calls.append((kind, *args))
        if kind in self.failures:
            raise self.failures[kind]

    def calls_of(self, kind):
        return [c for c in self.calls if c[0] == kind]

    def list_role_definitions(self):
        self._record("roles")
        return list(self.roles)

    def list_assignments(self, role_id):
        self._record("assignments", role_id)
        return [{"principalId": pid} for pid in self.assignments.get(role_id, [])]

    def list_eligibilities(self, role_id):
        self._record("eligibilities", role_id)
        return [{"principalId": pid} for pid in self.eligibilities.get(role_id, [])]

    def lookup_user(self, object_id):
        self._record("user", object_id)
        return self.users.get(object_id)

    def lookup_service_principal(self, object_id):
        self._record("service_principal", object_id)
        return self.service_principals.get(object_id)

    def lookup_group(self, object_id):
        self._record("group", object_id)
        return self.groups.get(object_id)


@pytest.fixture
def scenario_directory():
    """Two roles, one matching 'admin', with a user assigned and a group eligible."""
    return FakeDirectory(
        roles=[
            {"id": "r1", "displayName": "Global Administrator"},
            {"id": "r2", "displayName": "User"},
        ],
        assignments={"r1": ["u1"], "r2": ["u2"]},
        eligibilities={"r1": ["g1"]},
        users={
            "u1": {"id": "u1", "displayName": "Alice"},
            "u2": {"id": "u2", "displayName": "Bob"},
        },
        groups={"g1": {"id": "g1", "displayName": "Eng Team"}},
    )


@pytest.fixture
def mixed_directory():
    """Every principal category, spread over three admin roles."""
    return FakeDirectory(
        roles=[
            {"id": "r-ga", "displayName": "Global Administrator"},
            {"id": "r-reader", "displayName": "Global Reader"},
            {"id": "r-app", "displayName": "Application Administrator"},
            {"id": "r-sec", "displayName": "Security Administrator"},
        ],
        assignments={
            "r-ga": ["u1", "sp1", "ghost"],
            "r-app": ["mi1", "u2"],
            "r-sec": [],
        },
        eligibilities={
            "r-ga": ["u2", "g1"],
            "r-app": ["u1"],
            "r-sec": ["g1"],
        },
        users={
            "u1": {"id": "u1", "displayName": "Alice"},
            "u2": {"id": "u2", "displayName": "Bob"},
        },
        service_principals={
            "sp1": {"id": "sp1", "displayName": "Deploy App", "tags": ["WindowsAzureActiveDirectoryIntegratedApp"]},
            "mi1": {"id": "mi1", "displayName": "vm-identity", "tags": ["ManagedIdentity"]},
        },
        groups={"g1": {"id": "g1", "displayName": "Eng Team"}},
    )


@pytest.fixture(autouse=True)
def _quiet_debug():
    fncSetDebug(False)
    yield
    fncSetDebug(False)
