from fastapi import APIRouter, Depends
from supabase import Client
from typing import List

from swarm_api.core.dependencies import (
    get_execution_context,
    get_membership,
    require_company_mode,
    require_permission,
    require_user,
)
from swarm_api.core.exceptions import AccessDeniedError
from swarm_api.core.execution import ExecutionContext
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.security import Principal
from swarm_api.database.supabase_client import get_service_supabase
from swarm_api.modules.rbac.schemas import (
    FunctionPermissionResponse, RoleCreate, RoleResponse, RoleWithPermissionsResponse,
    RoleAssign, RoleAssignResponse, RolePermissionsUpdate, UserCompanyRole
)
from swarm_api.modules.rbac.service import RbacService

router = APIRouter(prefix="/rbac", tags=["rbac"])

MANAGE_ROLES = "company:manage_roles"


def get_rbac_service(
    supabase: Client = Depends(get_service_supabase),
    membership: MembershipResolver = Depends(get_membership),
    execution: ExecutionContext = Depends(get_execution_context)
) -> RbacService:
    return RbacService(supabase, membership, execution)


@router.get("/roles", response_model=List[RoleWithPermissionsResponse])
async def list_roles(
    principal: Principal = Depends(require_permission(MANAGE_ROLES)),
    service: RbacService = Depends(get_rbac_service)
):
    """List all roles with their permissions"""
    return await service.list_roles(principal)


@router.get("/permissions", response_model=List[FunctionPermissionResponse])
async def list_permissions(
    principal: Principal = Depends(require_permission(MANAGE_ROLES)),
    service: RbacService = Depends(get_rbac_service)
):
    """List all available permissions"""
    return await service.list_permissions(principal)


@router.post("/roles", response_model=RoleResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    principal: Principal = Depends(require_permission(MANAGE_ROLES)),
    service: RbacService = Depends(get_rbac_service)
):
    """Create a new role"""
    return await service.create_role(principal, role_data)


@router.post("/roles/assign", response_model=RoleAssignResponse, status_code=201)
async def assign_role(
    assignment: RoleAssign,
    principal: Principal = Depends(require_permission(MANAGE_ROLES)),
    service: RbacService = Depends(get_rbac_service)
):
    """Assign a role to a user in a company"""
    return await service.assign_role(principal, assignment)


@router.put("/roles/permissions", response_model=RoleWithPermissionsResponse)
async def update_role_permissions(
    update: RolePermissionsUpdate,
    principal: Principal = Depends(require_permission(MANAGE_ROLES)),
    service: RbacService = Depends(get_rbac_service)
):
    """Replace a role's permissions"""
    return await service.update_role_permissions(principal, update)


@router.get("/me/role", response_model=UserCompanyRole)
async def get_my_role(
    principal: Principal = Depends(require_company_mode),
    service: RbacService = Depends(get_rbac_service)
):
    """Caller's role in the company selected by the x-company-id header"""
    return await service.get_user_role_in_company(principal, principal.user_id, principal.company_id)


@router.get("/users/{user_id}/companies/{company_id}/role", response_model=UserCompanyRole)
async def get_user_role_in_company(
    user_id: str,
    company_id: str,
    principal: Principal = Depends(require_user),
    membership: MembershipResolver = Depends(get_membership),
    service: RbacService = Depends(get_rbac_service)
):
    """Get a user's role in a company (own role, or anyone's with company:manage_roles)"""
    if user_id != principal.user_id and not await membership.has_permission(principal.user_id, MANAGE_ROLES):
        raise AccessDeniedError(
            f"Missing {MANAGE_ROLES} permission",
            {"user_id": principal.user_id, "target_user_id": user_id},
        )
    return await service.get_user_role_in_company(principal, user_id, company_id)
