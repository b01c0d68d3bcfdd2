from fastapi import APIRouter, Depends
from supabase import Client
from typing import Optional

from swarm_api.core.dependencies import (
    get_current_principal,
    get_execution_context,
    get_filter_builder,
    get_permission_validator,
    require_user,
)
from swarm_api.core.execution import ExecutionContext
from swarm_api.core.permission_validator import PermissionValidator
from swarm_api.core.secure_filters import SecureFilterBuilder
from swarm_api.core.security import Principal
from swarm_api.database.supabase_client import get_service_supabase
from swarm_api.modules.organizations.schemas import (
    OrganizationCreate, OrganizationUpdate, OrganizationResponse, OrganizationListResponse
)
from swarm_api.modules.organizations.service import OrganizationService

router = APIRouter(prefix="/organizations", tags=["organizations"])


def get_organization_service(
    supabase: Client = Depends(get_service_supabase),
    validator: PermissionValidator = Depends(get_permission_validator),
    filters: SecureFilterBuilder = Depends(get_filter_builder),
    execution: ExecutionContext = Depends(get_execution_context)
) -> OrganizationService:
    return OrganizationService(supabase, validator, filters, execution)


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    org_data: OrganizationCreate,
    principal: Principal = Depends(require_user),
    service: OrganizationService = Depends(get_organization_service)
):
    """Create a new organization"""
    return await service.create_organization(principal, org_data)


@router.get("", response_model=OrganizationListResponse)
async def search_organizations(
    search: Optional[str] = None,
    company_id: Optional[str] = None,
    is_public: Optional[bool] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service)
):
    """Search organizations visible to the caller"""
    return await service.search_organizations(
        principal, search=search, company_id=company_id, is_public=is_public,
        limit=limit, offset=offset, sort_by=sort_by, sort_order=sort_order,
    )


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization_id: str,
    principal: Principal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service)
):
    """Get organization by ID"""
    return await service.get_organization(principal, organization_id)


@router.put("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    org_data: OrganizationUpdate,
    principal: Principal = Depends(require_user),
    service: OrganizationService = Depends(get_organization_service)
):
    """Update organization"""
    return await service.update_organization(principal, organization_id, org_data)


@router.delete("/{organization_id}", status_code=204)
async def delete_organization(
    organization_id: str,
    principal: Principal = Depends(require_user),
    service: OrganizationService = Depends(get_organization_service)
):
    """Delete organization"""
    await service.delete_organization(principal, organization_id)
    return None
