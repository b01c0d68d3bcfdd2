from fastapi import APIRouter, Depends, Query
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
from swarm_api.modules.agents.schemas import (
    AgentCreate, AgentUpdate, AgentResponse, AgentSearchParams, AgentSearchResponse
)
from swarm_api.modules.agents.service import AgentService

router = APIRouter(prefix="/agents", tags=["agents"])


def get_agent_service(
    supabase: Client = Depends(get_service_supabase),
    validator: PermissionValidator = Depends(get_permission_validator),
    filters: SecureFilterBuilder = Depends(get_filter_builder),
    execution: ExecutionContext = Depends(get_execution_context)
) -> AgentService:
    return AgentService(supabase, validator, filters, execution)


@router.post("", response_model=AgentResponse, status_code=201)
async def create_agent(
    agent_data: AgentCreate,
    principal: Principal = Depends(require_user),
    service: AgentService = Depends(get_agent_service)
):
    """Create a new agent"""
    return await service.create_agent(principal, agent_data)


@router.get("", response_model=AgentSearchResponse)
async def search_agents(
    query: Optional[str] = None,
    company_id: Optional[str] = None,
    category_id: Optional[str] = None,
    is_public: Optional[bool] = None,
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    service: AgentService = Depends(get_agent_service)
):
    """Search agents; anonymous callers only see public agents"""
    params = AgentSearchParams(
        query=query, company_id=company_id, category_id=category_id, is_public=is_public,
        limit=limit, offset=offset, sort_by=sort_by, sort_order=sort_order,
    )
    return await service.search_agents(principal, params)


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(
    agent_id: str,
    principal: Principal = Depends(get_current_principal),
    service: AgentService = Depends(get_agent_service)
):
    """Get agent by ID"""
    return await service.get_agent(principal, agent_id)


@router.put("/{agent_id}", response_model=AgentResponse)
async def update_agent(
    agent_id: str,
    agent_data: AgentUpdate,
    principal: Principal = Depends(require_user),
    service: AgentService = Depends(get_agent_service)
):
    """Update agent"""
    return await service.update_agent(principal, agent_id, agent_data)


@router.delete("/{agent_id}", status_code=204)
async def delete_agent(
    agent_id: str,
    principal: Principal = Depends(require_user),
    service: AgentService = Depends(get_agent_service)
):
    """Delete agent"""
    await service.delete_agent(principal, agent_id)
    return None
