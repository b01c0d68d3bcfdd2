import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from swarm_api.config import settings
from swarm_api.config.permissions_config import SYSTEM_ADMIN_ROLE
from swarm_api.core.exceptions import AccessDeniedError, LastAdminError
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.secure_filters import normalize_search
from swarm_api.core.secured_service import SecuredService
from swarm_api.core.security import Operation, Principal, ResourceKind, Role
from swarm_api.database.supabase_client import execute
from swarm_api.modules.companies.schemas import (
    CompanyCreate, CompanyUpdate, CompanyResponse, CompanyListResponse,
    CompanyMemberAdd, CompanyMemberResponse, MemberRoleChangeResponse,
    BulkRoleUpdateItem, BulkRoleUpdateResponse, UserCompanyRoleResponse
)

logger = logging.getLogger(__name__)

COMPANY_SORT_FIELDS = ("created_at", "updated_at", "name")
MEMBER_COLUMNS = "user_id, company_id, role_id, created_at, roles(role_name)"

# Company-scoped tables that block deleting a company while rows remain
COMPANY_DEPENDENCIES = {
    "agents": "agents",
    "organizations": "organizations",
    "teams": "teams",
    "tools": "tools",
}


def is_admin_role(role_name: Optional[str]) -> bool:
    return role_name in settings.get_admin_role_names()


async def ensure_admin_remains(
    membership: MembershipResolver,
    company_id: str,
    current_role: Optional[str],
    new_role: Optional[str] = None,
) -> None:
    """Raise LastAdminError if moving a member off current_role would leave the company without an admin.

    new_role=None means the membership is being removed.
    """
    if not is_admin_role(current_role) or is_admin_role(new_role):
        return
    if await membership.count_admins(company_id) <= 1:
        raise LastAdminError(
            "Cannot remove the last admin - company must have at least one admin",
            {"company_id": company_id},
        )


def ensure_assignable(principal: Principal, role_name: Optional[str]) -> None:
    """Only system admins may hand out the system admin role through a membership."""
    if role_name == SYSTEM_ADMIN_ROLE and principal.role != Role.ADMIN:
        raise AccessDeniedError(
            "System roles cannot be assigned through company memberships",
            {"user_id": principal.user_id, "role_name": role_name},
        )


async def get_role_by_name(supabase: Client, role_name: str) -> Dict[str, Any]:
    result = await execute(
        supabase.table("roles")
            .select("role_id, role_name")
            .eq("role_name", role_name)
            .limit(1),
        "role lookup by name",
    )
    if not result.data:
        raise HTTPException(status_code=404, detail=f"Role '{role_name}' not found")
    return result.data[0]


def _member(row: Dict[str, Any]) -> CompanyMemberResponse:
    role = row.get("roles") or {}
    return CompanyMemberResponse(
        user_id=row["user_id"],
        company_id=row["company_id"],
        role_id=row.get("role_id"),
        role_name=role.get("role_name"),
        created_at=row.get("created_at"),
    )


class CompanyService(SecuredService):
    resource = ResourceKind.COMPANY

    @property
    def membership(self) -> MembershipResolver:
        return self.validator.membership

    async def _get_membership(self, company_id: str, user_id: str) -> Optional[CompanyMemberResponse]:
        result = await execute(
            self.supabase.table("user_companies")
                .select(MEMBER_COLUMNS)
                .eq("company_id", company_id)
                .eq("user_id", user_id)
                .limit(1),
            "membership get",
        )
        if not result.data:
            return None
        return _member(result.data[0])

    async def _ensure_unique_name(self, name: str, exclude_company_id: Optional[str] = None):
        query = self.supabase.table("companies").select("company_id").eq("name", name)
        if exclude_company_id:
            query = query.neq("company_id", exclude_company_id)
        result = await execute(query.limit(1), "company name check")
        if result.data:
            raise HTTPException(status_code=409, detail="Company name already exists")

    # Companies

    async def create_company(self, principal: Principal, company_data: CompanyCreate) -> CompanyResponse:
        """Create a company; the creator becomes its first admin"""
        payload = company_data.model_dump(exclude_none=True, mode="json")
        payload["name"] = payload["name"].strip()
        await self.authorize(principal, Operation.CREATE, data=payload)

        async def _create():
            await self._ensure_unique_name(payload["name"])
            admin_role = await get_role_by_name(self.supabase, settings.company_admin_role_name)
            result = await execute(self.supabase.table("companies").insert(payload), "company insert")
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create company")
            company = result.data[0]
            try:
                await execute(
                    self.supabase.table("user_companies").insert({
                        "user_id": principal.user_id,
                        "company_id": company["company_id"],
                        "role_id": admin_role["role_id"],
                    }),
                    "creator membership insert",
                )
            except Exception:
                # A company without its creator would have no admin
                logger.error(f"Creator membership insert failed, removing company {company['company_id']}")
                await execute(
                    self.supabase.table("companies").delete().eq("company_id", company["company_id"]),
                    "company insert rollback",
                )
                raise
            self.membership.invalidate_permissions(principal.user_id)
            return CompanyResponse(**company)

        return await self.run(principal, "create_company", _create, name=payload["name"])

    async def list_companies(
        self,
        principal: Principal,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> CompanyListResponse:
        """Companies the caller belongs to (all of them for admins holding company:read)"""
        window = normalize_search(
            limit, offset, sort_by, sort_order,
            allowed_sort_fields=COMPANY_SORT_FIELDS,
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
        )

        async def _list():
            predicate = await self.access_filter(principal)
            rows, total = await self.fetch_page("companies", "*", predicate, window)
            return CompanyListResponse(
                companies=[CompanyResponse(**row) for row in rows],
                total_count=total,
                has_more=window.offset + window.limit < total,
            )

        return await self.run(principal, "list_companies", _list)

    async def get_company(self, principal: Principal, company_id: str) -> CompanyResponse:
        """Get company by ID"""
        await self.authorize(principal, Operation.READ, resource_id=company_id)

        async def _get():
            result = await execute(
                self.supabase.table("companies")
                    .select("*")
                    .eq("company_id", company_id)
                    .limit(1),
                "company get",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Company not found")
            return CompanyResponse(**result.data[0])

        return await self.run(principal, "get_company", _get, resource_id=company_id)

    async def update_company(self, principal: Principal, company_id: str, company_data: CompanyUpdate) -> CompanyResponse:
        """Update company (company admins of it, or admins holding company:update)"""
        await self.authorize(principal, Operation.UPDATE, resource_id=company_id)
        update_data = company_data.model_dump(exclude_unset=True, mode="json")
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        async def _update():
            if update_data.get("name"):
                await self._ensure_unique_name(update_data["name"], exclude_company_id=company_id)
            result = await execute(
                self.supabase.table("companies")
                    .update(update_data)
                    .eq("company_id", company_id),
                "company update",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Company not found")
            return CompanyResponse(**result.data[0])

        return await self.run(principal, "update_company", _update, resource_id=company_id)

    async def delete_company(self, principal: Principal, company_id: str) -> bool:
        """Delete company; refused while company-scoped resources remain"""
        await self.authorize(principal, Operation.DELETE, resource_id=company_id)

        async def _delete():
            dependencies = []
            for table, label in COMPANY_DEPENDENCIES.items():
                result = await execute(
                    self.supabase.table(table)
                        .select("company_id", count="exact")
                        .eq("company_id", company_id)
                        .limit(1),
                    f"{table} dependency count",
                )
                count = result.count if result.count is not None else len(result.data or [])
                if count:
                    dependencies.append(f"{count} {label}")
            if dependencies:
                raise HTTPException(
                    status_code=409,
                    detail=f"Cannot delete company with existing dependencies: {', '.join(dependencies)}"
                )
            # Memberships go only once the company row is gone
            result = await execute(
                self.supabase.table("companies").delete().eq("company_id", company_id),
                "company delete",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Company not found")
            await execute(
                self.supabase.table("user_companies").delete().eq("company_id", company_id),
                "company memberships delete",
            )
            # Every former member may have lost a role
            self.membership.invalidate_permissions()
            return True

        return await self.run(principal, "delete_company", _delete, resource_id=company_id)

    # Members

    async def list_members(self, principal: Principal, company_id: str, require_company: bool = False) -> List[CompanyMemberResponse]:
        """Members of a company the caller belongs to"""
        await self.authorize(principal, Operation.READ, resource_id=company_id, require_company=require_company)

        async def _list():
            result = await execute(
                self.supabase.table("user_companies")
                    .select(MEMBER_COLUMNS)
                    .eq("company_id", company_id)
                    .order("created_at"),
                "company members list",
            )
            return [_member(row) for row in result.data or []]

        return await self.run(principal, "list_company_members", _list, resource_id=company_id)

    async def add_member(self, principal: Principal, company_id: str, member: CompanyMemberAdd) -> CompanyMemberResponse:
        """Add a user to a company"""
        await self.authorize(principal, Operation.UPDATE, resource_id=company_id, data={"company_id": company_id})
        role_name = member.role_name or settings.member_role_name

        async def _add():
            if await self._get_membership(company_id, member.user_id):
                raise HTTPException(status_code=409, detail="User is already a member of this company")
            role = await get_role_by_name(self.supabase, role_name)
            ensure_assignable(principal, role["role_name"])
            await execute(
                self.supabase.table("user_companies").insert({
                    "user_id": member.user_id,
                    "company_id": company_id,
                    "role_id": role["role_id"],
                }),
                "membership insert",
            )
            self.membership.invalidate_permissions(member.user_id)
            return await self._get_membership(company_id, member.user_id)

        return await self.run(
            principal, "add_company_member", _add,
            resource_id=company_id, target_user_id=member.user_id, role_name=role_name,
        )

    async def update_member_role(
        self, principal: Principal, company_id: str, user_id: str, role_name: str
    ) -> MemberRoleChangeResponse:
        """Change a member's role; the last admin cannot be moved to a non-admin role"""
        return await self._change_member_role(principal, company_id, user_id, role_name, "update_member_role")

    async def _change_member_role(
        self,
        principal: Principal,
        company_id: str,
        user_id: str,
        role_name: str,
        operation: str,
        only_admins: bool = False,
    ) -> MemberRoleChangeResponse:
        await self.authorize(principal, Operation.UPDATE, resource_id=company_id, data={"company_id": company_id})

        async def _update():
            current = await self._get_membership(company_id, user_id)
            if current is None:
                raise HTTPException(status_code=404, detail="User is not a member of this company")
            if only_admins and not is_admin_role(current.role_name):
                raise HTTPException(status_code=400, detail="Target user is not currently an admin")
            role = await get_role_by_name(self.supabase, role_name)
            ensure_assignable(principal, role["role_name"])
            if current.role_id == role["role_id"]:
                return MemberRoleChangeResponse(
                    message="Role unchanged", old_role=current.role_name, new_role=current.role_name, member=current
                )
            await ensure_admin_remains(self.membership, company_id, current.role_name, role["role_name"])
            await execute(
                self.supabase.table("user_companies")
                    .update({"role_id": role["role_id"]})
                    .eq("company_id", company_id)
                    .eq("user_id", user_id),
                "membership role update",
            )
            self.membership.invalidate_permissions(user_id)
            updated = await self._get_membership(company_id, user_id)
            return MemberRoleChangeResponse(
                message="Role updated successfully",
                old_role=current.role_name,
                new_role=role["role_name"],
                member=updated or current,
            )

        return await self.run(
            principal, operation, _update,
            resource_id=company_id, target_user_id=user_id, role_name=role_name,
        )

    async def promote_member(self, principal: Principal, company_id: str, user_id: str) -> MemberRoleChangeResponse:
        """Promote member to the company admin role"""
        return await self.update_member_role(principal, company_id, user_id, settings.company_admin_role_name)

    async def demote_member(self, principal: Principal, company_id: str, user_id: str) -> MemberRoleChangeResponse:
        """Demote an admin to the member role"""
        return await self._change_member_role(
            principal, company_id, user_id, settings.member_role_name, "demote_member", only_admins=True
        )

    async def remove_member(self, principal: Principal, company_id: str, user_id: str) -> bool:
        """Remove a member; removing yourself is the same as leaving"""
        if user_id == principal.user_id:
            return await self.leave_company(principal, company_id)
        await self.authorize(principal, Operation.UPDATE, resource_id=company_id, data={"company_id": company_id})

        async def _remove():
            current = await self._get_membership(company_id, user_id)
            if current is None:
                raise HTTPException(status_code=404, detail="User is not a member of this company")
            await ensure_admin_remains(self.membership, company_id, current.role_name)
            await self._delete_membership(company_id, user_id)
            return True

        return await self.run(principal, "remove_company_member", _remove, resource_id=company_id, target_user_id=user_id)

    async def leave_company(self, principal: Principal, company_id: str) -> bool:
        """Leave a company; the last admin has to hand over first"""
        await self.authorize(principal, Operation.READ, resource_id=company_id)

        async def _leave():
            current = await self._get_membership(company_id, principal.user_id)
            if current is None:
                raise HTTPException(status_code=404, detail="You are not a member of this company")
            await ensure_admin_remains(self.membership, company_id, current.role_name)
            await self._delete_membership(company_id, principal.user_id)
            return True

        return await self.run(principal, "leave_company", _leave, resource_id=company_id)

    async def _delete_membership(self, company_id: str, user_id: str) -> None:
        await execute(
            self.supabase.table("user_companies")
                .delete()
                .eq("company_id", company_id)
                .eq("user_id", user_id),
            "membership delete",
        )
        self.membership.invalidate_permissions(user_id)

    async def bulk_update_roles(
        self, principal: Principal, company_id: str, updates: List[BulkRoleUpdateItem]
    ) -> BulkRoleUpdateResponse:
        """Apply several role changes; rejected up front if the end state has no admin"""
        await self.authorize(principal, Operation.UPDATE, resource_id=company_id, data={"company_id": company_id})

        async def _bulk():
            members_result = await execute(
                self.supabase.table("user_companies")
                    .select(MEMBER_COLUMNS)
                    .eq("company_id", company_id),
                "company members list",
            )
            members = {row["user_id"]: _member(row) for row in members_result.data or []}
            roles: Dict[str, Dict[str, Any]] = {}
            for update in updates:
                if update.user_id not in members:
                    raise HTTPException(status_code=404, detail=f"User {update.user_id} is not a member of this company")
                if update.role_name not in roles:
                    roles[update.role_name] = await get_role_by_name(self.supabase, update.role_name)
                    ensure_assignable(principal, roles[update.role_name]["role_name"])

            final_roles = {user_id: m.role_name for user_id, m in members.items()}
            for update in updates:
                final_roles[update.user_id] = roles[update.role_name]["role_name"]
            had_admin = any(is_admin_role(m.role_name) for m in members.values())
            if had_admin and not any(is_admin_role(r) for r in final_roles.values()):
                raise LastAdminError(
                    "Cannot remove the last admin - company must have at least one admin",
                    {"company_id": company_id},
                )

            updated, unchanged = [], []
            for update in updates:
                role = roles[update.role_name]
                if members[update.user_id].role_id == role["role_id"]:
                    unchanged.append(update.user_id)
                    continue
                await execute(
                    self.supabase.table("user_companies")
                        .update({"role_id": role["role_id"]})
                        .eq("company_id", company_id)
                        .eq("user_id", update.user_id),
                    "membership role update",
                )
                self.membership.invalidate_permissions(update.user_id)
                updated.append(CompanyMemberResponse(
                    user_id=update.user_id,
                    company_id=company_id,
                    role_id=role["role_id"],
                    role_name=role["role_name"],
                    created_at=members[update.user_id].created_at,
                ))
            return BulkRoleUpdateResponse(updated=updated, unchanged=unchanged)

        return await self.run(principal, "bulk_update_member_roles", _bulk, resource_id=company_id, count=len(updates))

    async def get_user_roles(self, principal: Principal, target_user_id: str) -> List[UserCompanyRoleResponse]:
        """Roles of a user across companies; other users' roles only for admins holding company:read"""
        if target_user_id != principal.user_id:
            if principal.role != Role.ADMIN:
                raise AccessDeniedError(
                    "Only admins can view other users' company roles",
                    {"user_id": principal.user_id, "target_user_id": target_user_id},
                )
            await self.authorize(principal, Operation.READ)

        async def _roles():
            result = await execute(
                self.supabase.table("user_companies")
                    .select("company_id, role_id, created_at, roles(role_name), companies(name)")
                    .eq("user_id", target_user_id),
                "user company roles",
            )
            roles = []
            for row in result.data or []:
                role_name = (row.get("roles") or {}).get("role_name")
                roles.append(UserCompanyRoleResponse(
                    company_id=row["company_id"],
                    company_name=(row.get("companies") or {}).get("name"),
                    role_id=row.get("role_id"),
                    role_name=role_name,
                    is_admin=is_admin_role(role_name),
                    joined_at=row.get("created_at"),
                ))
            return roles

        return await self.run(principal, "get_user_company_roles", _roles, target_user_id=target_user_id)
