"""
Repository interface the access-control core reads through, and its Supabase
implementation.

Every method is a pure read. Failures propagate as UpstreamUnavailableError so
the decision engine fails closed instead of treating an outage as "no access".
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

from supabase import Client

from swarm_api.core.security import OwnershipFact, ResourceKind
from swarm_api.database.supabase_client import execute

logger = logging.getLogger(__name__)


class DataStore(Protocol):
    async def get_ownership(self, resource: ResourceKind, resource_id: str) -> Optional[OwnershipFact]:
        ...

    async def is_member(self, user_id: str, company_id: str) -> bool:
        ...

    async def is_admin(self, user_id: str, company_id: str) -> bool:
        ...

    async def admin_companies_of(self, user_id: str) -> List[str]:
        ...

    async def member_companies_of(self, user_id: str) -> List[str]:
        ...

    async def role_of(self, user_id: str, company_id: str) -> Optional[str]:
        ...

    async def has_named_permission(self, user_id: str, permission_name: str) -> bool:
        ...

    async def count_admins(self, company_id: str) -> int:
        ...


@dataclass(frozen=True)
class OwnershipSource:
    table: str
    id_column: str
    owner_column: Optional[str] = "user_id"
    company_column: Optional[str] = "company_id"
    public_column: Optional[str] = "is_public"

    def columns(self) -> str:
        cols = [self.id_column, self.owner_column, self.company_column, self.public_column]
        return ", ".join(dict.fromkeys(c for c in cols if c))


OWNERSHIP_SOURCES: Dict[ResourceKind, OwnershipSource] = {
    ResourceKind.AGENT: OwnershipSource("agents", "agent_id"),
    ResourceKind.ORGANIZATION: OwnershipSource("organizations", "organization_id"),
    ResourceKind.TEAM: OwnershipSource("teams", "team_id"),
    ResourceKind.TOOL: OwnershipSource("tools", "tool_id", owner_column="owner_id"),
    ResourceKind.LLMSTXT: OwnershipSource("llmstxt", "llmstxt_id"),
    ResourceKind.WAITLIST: OwnershipSource("waitlist_entries", "waitlist_id", company_column=None, public_column=None),
    ResourceKind.COMPANY: OwnershipSource("companies", "company_id", owner_column=None, company_column="company_id", public_column=None),
}


class SupabaseDataStore:
    """DataStore backed by the Supabase tables user_companies, roles and role_function_permissions."""

    def __init__(self, supabase: Client, admin_role_names: Sequence[str]):
        self.supabase = supabase
        self.admin_role_names = list(admin_role_names)

    async def get_ownership(self, resource: ResourceKind, resource_id: str) -> Optional[OwnershipFact]:
        if resource == ResourceKind.AGENT_LOG:
            return await self._get_log_ownership(resource_id)

        source = OWNERSHIP_SOURCES.get(resource)
        if source is None:
            return None
        result = await execute(
            self.supabase.table(source.table)
                .select(source.columns())
                .eq(source.id_column, resource_id)
                .limit(1),
            f"{resource.value} ownership lookup",
        )
        if not result.data:
            return None
        row = result.data[0]
        return OwnershipFact(
            id=str(row[source.id_column]),
            owner_user_id=row.get(source.owner_column) if source.owner_column else None,
            company_id=row.get(source.company_column) if source.company_column else None,
            is_public=bool(row.get(source.public_column)) if source.public_column else False,
        )

    async def _get_log_ownership(self, log_id: str) -> Optional[OwnershipFact]:
        """A log is owned by whoever owns its agent."""
        result = await execute(
            self.supabase.table("agent_logs")
                .select("agent_log_id, agent_id")
                .eq("agent_log_id", log_id)
                .limit(1),
            "agent_log ownership lookup",
        )
        if not result.data:
            return None
        agent = await self.get_ownership(ResourceKind.AGENT, result.data[0]["agent_id"])
        if agent is None:
            return None
        return OwnershipFact(
            id=str(log_id),
            owner_user_id=agent.owner_user_id,
            company_id=agent.company_id,
            is_public=agent.is_public,
        )

    async def is_member(self, user_id: str, company_id: str) -> bool:
        result = await execute(
            self.supabase.table("user_companies")
                .select("user_id")
                .eq("user_id", user_id)
                .eq("company_id", company_id)
                .limit(1),
            "membership lookup",
        )
        return bool(result.data)

    async def is_admin(self, user_id: str, company_id: str) -> bool:
        result = await execute(
            self.supabase.table("user_companies")
                .select("user_id, roles!inner(role_name)")
                .eq("user_id", user_id)
                .eq("company_id", company_id)
                .in_("roles.role_name", self.admin_role_names)
                .limit(1),
            "company admin lookup",
        )
        return bool(result.data)

    async def admin_companies_of(self, user_id: str) -> List[str]:
        result = await execute(
            self.supabase.table("user_companies")
                .select("company_id, roles!inner(role_name)")
                .eq("user_id", user_id)
                .in_("roles.role_name", self.admin_role_names),
            "admin companies lookup",
        )
        return [row["company_id"] for row in result.data or []]

    async def member_companies_of(self, user_id: str) -> List[str]:
        result = await execute(
            self.supabase.table("user_companies")
                .select("company_id")
                .eq("user_id", user_id),
            "member companies lookup",
        )
        return [row["company_id"] for row in result.data or []]

    async def role_of(self, user_id: str, company_id: str) -> Optional[str]:
        result = await execute(
            self.supabase.table("user_companies")
                .select("role_id, roles(role_name)")
                .eq("user_id", user_id)
                .eq("company_id", company_id)
                .limit(1),
            "company role lookup",
        )
        if not result.data:
            return None
        role = result.data[0].get("roles") or {}
        return role.get("role_name")

    async def has_named_permission(self, user_id: str, permission_name: str) -> bool:
        """Authoritative check: any role the user holds grants the function permission."""
        memberships = await execute(
            self.supabase.table("user_companies")
                .select("role_id")
                .eq("user_id", user_id),
            "role lookup",
        )
        role_ids = list({m["role_id"] for m in memberships.data or [] if m.get("role_id")})
        if not role_ids:
            return False
        result = await execute(
            self.supabase.table("role_function_permissions")
                .select("role_id, function_permissions!inner(function_name)")
                .in_("role_id", role_ids)
                .eq("function_permissions.function_name", permission_name)
                .limit(1),
            "function permission lookup",
        )
        return bool(result.data)

    async def count_admins(self, company_id: str) -> int:
        result = await execute(
            self.supabase.table("user_companies")
                .select("user_id, roles!inner(role_name)")
                .eq("company_id", company_id)
                .in_("roles.role_name", self.admin_role_names),
            "company admin count",
        )
        return len(result.data or [])
