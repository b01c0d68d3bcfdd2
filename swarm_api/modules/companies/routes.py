from fastapi import APIRouter, Depends
from supabase import Client
from typing import List, Optional

from swarm_api.core.dependencies import (
    get_execution_context,
    get_filter_builder,
    get_permission_validator,
    require_company_mode,
    require_user,
)
from swarm_api.core.execution import ExecutionContext
from swarm_api.core.permission_validator import PermissionValidator
from swarm_api.core.secure_filters import SecureFilterBuilder
from swarm_api.core.security import Principal
from swarm_api.database.supabase_client import get_service_supabase
from swarm_api.modules.companies.schemas import (
    CompanyCreate, CompanyUpdate, CompanyResponse, CompanyListResponse,
    CompanyMemberAdd, CompanyMemberRoleUpdate, CompanyMemberResponse,
    MemberRoleChangeResponse, BulkRoleUpdateRequest, BulkRoleUpdateResponse,
    UserCompanyRoleResponse
)
from swarm_api.modules.companies.service import CompanyService

router = APIRouter(prefix="/companies", tags=["companies"])


def get_company_service(
    supabase: Client = Depends(get_service_supabase),
    validator: PermissionValidator = Depends(get_permission_validator),
    filters: SecureFilterBuilder = Depends(get_filter_builder),
    execution: ExecutionContext = Depends(get_execution_context)
) -> CompanyService:
    return CompanyService(supabase, validator, filters, execution)


@router.post("", response_model=CompanyResponse, status_code=201)
async def create_company(
    company_data: CompanyCreate,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Create a new company; the caller becomes its admin"""
    return await service.create_company(principal, company_data)


@router.get("", response_model=CompanyListResponse)
async def list_companies(
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """List companies the caller belongs to"""
    return await service.list_companies(principal, limit=limit, offset=offset, sort_by=sort_by, sort_order=sort_order)


@router.get("/current/members", response_model=List[CompanyMemberResponse])
async def list_current_company_members(
    principal: Principal = Depends(require_company_mode),
    service: CompanyService = Depends(get_company_service)
):
    """List members of the company selected by the x-company-id header"""
    return await service.list_members(principal, principal.company_id, require_company=True)


@router.get("/users/{user_id}/roles", response_model=List[UserCompanyRoleResponse])
async def get_user_company_roles(
    user_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Get a user's roles across all companies"""
    return await service.get_user_roles(principal, user_id)


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Get company by ID"""
    return await service.get_company(principal, company_id)


@router.put("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: str,
    company_data: CompanyUpdate,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Update company"""
    return await service.update_company(principal, company_id, company_data)


@router.delete("/{company_id}", status_code=204)
async def delete_company(
    company_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Delete company"""
    await service.delete_company(principal, company_id)
    return None


@router.get("/{company_id}/members", response_model=List[CompanyMemberResponse])
async def list_company_members(
    company_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """List company members"""
    return await service.list_members(principal, company_id)


@router.post("/{company_id}/members", response_model=CompanyMemberResponse, status_code=201)
async def add_company_member(
    company_id: str,
    member: CompanyMemberAdd,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Add a user to the company"""
    return await service.add_member(principal, company_id, member)


@router.put("/{company_id}/members/roles", response_model=BulkRoleUpdateResponse)
async def bulk_update_member_roles(
    company_id: str,
    request: BulkRoleUpdateRequest,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Update several member roles at once"""
    return await service.bulk_update_roles(principal, company_id, request.updates)


@router.put("/{company_id}/members/{user_id}/role", response_model=MemberRoleChangeResponse)
async def update_member_role(
    company_id: str,
    user_id: str,
    role_update: CompanyMemberRoleUpdate,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Change a member's role"""
    return await service.update_member_role(principal, company_id, user_id, role_update.role_name)


@router.post("/{company_id}/members/{user_id}/promote", response_model=MemberRoleChangeResponse)
async def promote_member(
    company_id: str,
    user_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Promote a member to company admin"""
    return await service.promote_member(principal, company_id, user_id)


@router.post("/{company_id}/members/{user_id}/demote", response_model=MemberRoleChangeResponse)
async def demote_member(
    company_id: str,
    user_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Demote a company admin to regular member"""
    return await service.demote_member(principal, company_id, user_id)


@router.delete("/{company_id}/members/{user_id}", status_code=204)
async def remove_company_member(
    company_id: str,
    user_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Remove a member from the company"""
    await service.remove_member(principal, company_id, user_id)
    return None


@router.post("/{company_id}/leave", status_code=204)
async def leave_company(
    company_id: str,
    principal: Principal = Depends(require_user),
    service: CompanyService = Depends(get_company_service)
):
    """Leave the company"""
    await service.leave_company(principal, company_id)
    return None
