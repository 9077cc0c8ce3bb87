# ================================================================
# File     : directory.py
# Purpose  : Directory-role lookups over the Graph client
# Notes    : Lookups return None for objects that do not exist;
#            any other failure propagates as GraphAPIError.
# ================================================================

from typing import Any, Dict, List, Optional

from handlers.graph.client import GraphNotFoundError

REQUIRED_PERMS = [
    "RoleManagement.Read.Directory",
    "Directory.Read.All",
]


class GraphDirectory:
    """Role catalog, membership lists and principal lookups for one tenant."""

    def __init__(self, client):
        self.client = client

    # ---------- Role catalog / memberships ----------

    def list_role_definitions(self) -> List[Dict[str, Any]]:
        return self.client.get_all("roleManagement/directory/roleDefinitions?$select=id,displayName")

    def list_assignments(self, role_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(
            "roleManagement/directory/roleAssignments",
            params={
                "$filter": f"roleDefinitionId eq '{role_id}'",
                "$select": "id,principalId,roleDefinitionId,directoryScopeId",
            },
        )

    def list_eligibilities(self, role_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(
            "roleManagement/directory/roleEligibilityScheduleInstances",
            params={
                "$filter": f"roleDefinitionId eq '{role_id}'",
                "$select": "id,principalId,roleDefinitionId,startDateTime,endDateTime,directoryScopeId",
            },
        )

    # ---------- Principal lookups ----------

    def _lookup(self, collection: str, object_id: str, select: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.get(f"{collection}/{object_id}?$select={select}")
        except GraphNotFoundError:
            return None

    def lookup_user(self, object_id: str) -> Optional[Dict[str, Any]]:
        return self._lookup("users", object_id, "id,displayName")

    def lookup_service_principal(self, object_id: str) -> Optional[Dict[str, Any]]:
        return self._lookup("servicePrincipals", object_id, "id,displayName,tags")

    def lookup_group(self, object_id: str) -> Optional[Dict[str, Any]]:
        return self._lookup("groups", object_id, "id,displayName")
