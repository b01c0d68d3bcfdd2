import logging
from typing import Any, Dict, List

from fastapi import HTTPException
from supabase import Client

from swarm_api.config.permissions_config import SYSTEM_ADMIN_ROLE
from swarm_api.core.exceptions import AccessDeniedError
from swarm_api.core.execution import ExecutionContext, audit_info
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.security import Principal, Role
from swarm_api.database.supabase_client import execute
from swarm_api.modules.companies.service import ensure_admin_remains, ensure_assignable
from swarm_api.modules.rbac.schemas import (
    FunctionPermissionResponse, RoleCreate, RoleResponse, RoleWithPermissionsResponse,
    RoleAssign, RoleAssignResponse, RolePermissionsUpdate, UserCompanyRole
)

logger = logging.getLogger(__name__)

ROLE_WITH_PERMISSIONS = (
    "role_id, role_name, description, created_at, "
    "role_function_permissions(function_permissions(permission_id, function_name, description))"
)


def _role_with_permissions(row: Dict[str, Any]) -> RoleWithPermissionsResponse:
    permissions = []
    for link in row.get("role_function_permissions") or []:
        permission = link.get("function_permissions")
        if permission:
            permissions.append(FunctionPermissionResponse(**permission))
    permissions.sort(key=lambda p: p.function_name)
    return RoleWithPermissionsResponse(
        role_id=row["role_id"],
        role_name=row["role_name"],
        description=row.get("description"),
        created_at=row.get("created_at"),
        permissions=permissions,
    )


class RbacService:
    RESOURCE = "rbac"

    def __init__(self, supabase: Client, membership: MembershipResolver, execution: ExecutionContext):
        self.supabase = supabase
        self.membership = membership
        self.execution = execution

    async def _get_role(self, role_id: str) -> Dict[str, Any]:
        result = await execute(
            self.supabase.table("roles")
                .select(ROLE_WITH_PERMISSIONS)
                .eq("role_id", role_id)
                .limit(1),
            "role get",
        )
        if not result.data:
            raise HTTPException(status_code=404, detail="Role not found")
        return result.data[0]

    async def list_roles(self, principal: Principal) -> List[RoleWithPermissionsResponse]:
        """List all roles with their permissions"""
        async def _list():
            result = await execute(
                self.supabase.table("roles").select(ROLE_WITH_PERMISSIONS).order("role_name"),
                "roles list",
            )
            return [_role_with_permissions(row) for row in result.data or []]

        return await self.execution.execute(_list, audit_info(principal, "list_roles", self.RESOURCE))

    async def list_permissions(self, principal: Principal) -> List[FunctionPermissionResponse]:
        """List all function permissions"""
        async def _list():
            result = await execute(
                self.supabase.table("function_permissions")
                    .select("permission_id, function_name, description")
                    .order("function_name"),
                "permissions list",
            )
            return [FunctionPermissionResponse(**row) for row in result.data or []]

        return await self.execution.execute(_list, audit_info(principal, "list_permissions", self.RESOURCE))

    async def create_role(self, principal: Principal, role_data: RoleCreate) -> RoleResponse:
        """Create a new role"""
        async def _create():
            existing = await execute(
                self.supabase.table("roles")
                    .select("role_id")
                    .eq("role_name", role_data.role_name)
                    .limit(1),
                "role name check",
            )
            if existing.data:
                raise HTTPException(status_code=409, detail="Role already exists")
            result = await execute(
                self.supabase.table("roles").insert(role_data.model_dump(exclude_none=True)),
                "role insert",
            )
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create role")
            return RoleResponse(**result.data[0])

        return await self.execution.execute(
            _create, audit_info(principal, "create_role", self.RESOURCE, role_name=role_data.role_name)
        )

    async def assign_role(self, principal: Principal, assignment: RoleAssign) -> RoleAssignResponse:
        """Assign a role to a user in a company, creating the membership if needed.

        Outside system admins, the caller must administer the target company, and the
        system admin role is never handed out here.
        """
        async def _assign():
            if principal.role != Role.ADMIN and not await self.membership.is_admin(principal.user_id, assignment.company_id):
                raise AccessDeniedError(
                    "Can only assign roles in a company you administer",
                    {"user_id": principal.user_id, "company_id": assignment.company_id},
                )
            role = await self._get_role(assignment.role_id)
            ensure_assignable(principal, role["role_name"])
            existing = await execute(
                self.supabase.table("user_companies")
                    .select("role_id, roles(role_name)")
                    .eq("user_id", assignment.user_id)
                    .eq("company_id", assignment.company_id)
                    .limit(1),
                "membership get",
            )
            if existing.data:
                current_role = (existing.data[0].get("roles") or {}).get("role_name")
                await ensure_admin_remains(self.membership, assignment.company_id, current_role, role["role_name"])
                await execute(
                    self.supabase.table("user_companies")
                        .update({"role_id": assignment.role_id})
                        .eq("user_id", assignment.user_id)
                        .eq("company_id", assignment.company_id),
                    "membership role update",
                )
                created = False
            else:
                await execute(
                    self.supabase.table("user_companies").insert({
                        "user_id": assignment.user_id,
                        "company_id": assignment.company_id,
                        "role_id": assignment.role_id,
                    }),
                    "membership insert",
                )
                created = True
            self.membership.invalidate_permissions(assignment.user_id)
            return RoleAssignResponse(
                user_id=assignment.user_id,
                company_id=assignment.company_id,
                role=RoleResponse(
                    role_id=role["role_id"],
                    role_name=role["role_name"],
                    description=role.get("description"),
                    created_at=role.get("created_at"),
                ),
                created=created,
            )

        return await self.execution.execute(
            _assign,
            audit_info(
                principal, "assign_role", self.RESOURCE, assignment.role_id,
                target_user_id=assignment.user_id, target_company_id=assignment.company_id,
            ),
        )

    async def update_role_permissions(self, principal: Principal, update: RolePermissionsUpdate) -> RoleWithPermissionsResponse:
        """Replace the full permission set of a role"""
        async def _update():
            role = await self._get_role(update.role_id)
            if role["role_name"] == SYSTEM_ADMIN_ROLE and principal.role != Role.ADMIN:
                raise AccessDeniedError(
                    "Only system admins can change the system admin role",
                    {"user_id": principal.user_id, "role_id": update.role_id},
                )
            permission_ids = list(dict.fromkeys(update.permission_ids))
            if permission_ids:
                found = await execute(
                    self.supabase.table("function_permissions")
                        .select("permission_id")
                        .in_("permission_id", permission_ids),
                    "permissions lookup",
                )
                if len(found.data or []) != len(permission_ids):
                    raise HTTPException(status_code=404, detail="One or more permissions not found")
            await execute(
                self.supabase.table("role_function_permissions").delete().eq("role_id", update.role_id),
                "role permissions delete",
            )
            if permission_ids:
                await execute(
                    self.supabase.table("role_function_permissions").insert([
                        {"role_id": update.role_id, "permission_id": pid} for pid in permission_ids
                    ]),
                    "role permissions insert",
                )
            # Any holder of this role may now answer differently
            self.membership.invalidate_permissions()
            return _role_with_permissions(await self._get_role(update.role_id))

        return await self.execution.execute(
            _update,
            audit_info(principal, "update_role_permissions", self.RESOURCE, update.role_id, count=len(update.permission_ids)),
        )

    async def get_user_role_in_company(self, principal: Principal, user_id: str, company_id: str) -> UserCompanyRole:
        """A user's role in one company, with the permissions it grants"""
        async def _get():
            result = await execute(
                self.supabase.table("user_companies")
                    .select(f"user_id, company_id, roles({ROLE_WITH_PERMISSIONS})")
                    .eq("user_id", user_id)
                    .eq("company_id", company_id)
                    .limit(1),
                "user company role",
            )
            if not result.data or not result.data[0].get("roles"):
                raise HTTPException(status_code=404, detail="User has no role in this company")
            row = result.data[0]
            return UserCompanyRole(user_id=user_id, company_id=company_id, role=_role_with_permissions(row["roles"]))

        return await self.execution.execute(
            _get, audit_info(principal, "get_user_role_in_company", self.RESOURCE, target_user_id=user_id, target_company_id=company_id)
        )
