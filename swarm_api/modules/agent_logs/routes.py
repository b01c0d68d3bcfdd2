from fastapi import APIRouter, Depends
from supabase import Client
from typing import Optional
from datetime import datetime

from swarm_api.core.dependencies import (
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
from swarm_api.modules.agent_logs.schemas import (
    AgentLogCreate, AgentLogResponse, AgentLogFilters, AgentLogListResponse
)
from swarm_api.modules.agent_logs.service import AgentLogService

router = APIRouter(tags=["agent-logs"])


def get_agent_log_service(
    supabase: Client = Depends(get_service_supabase),
    validator: PermissionValidator = Depends(get_permission_validator),
    filters: SecureFilterBuilder = Depends(get_filter_builder),
    execution: ExecutionContext = Depends(get_execution_context)
) -> AgentLogService:
    return AgentLogService(supabase, validator, filters, execution)


@router.post("/agents/{agent_id}/logs", response_model=AgentLogResponse, status_code=201)
async def add_agent_log(
    agent_id: str,
    log_data: AgentLogCreate,
    principal: Principal = Depends(require_user),
    service: AgentLogService = Depends(get_agent_log_service)
):
    """Add a log line to an agent"""
    return await service.add_log(principal, agent_id, log_data)


@router.get("/agents/{agent_id}/logs", response_model=AgentLogListResponse)
async def list_logs_for_agent(
    agent_id: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    principal: Principal = Depends(require_user),
    service: AgentLogService = Depends(get_agent_log_service)
):
    """List logs of one agent"""
    return await service.list_logs(principal, AgentLogFilters(agent_id=agent_id, limit=limit, offset=offset))


@router.get("/agent-logs", response_model=AgentLogListResponse)
async def list_agent_logs(
    agent_id: Optional[str] = None,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_order: Optional[str] = None,
    principal: Principal = Depends(require_user),
    service: AgentLogService = Depends(get_agent_log_service)
):
    """List logs across every agent visible to the caller"""
    filters = AgentLogFilters(
        agent_id=agent_id, user_id=user_id, session_id=session_id,
        start_date=start_date, end_date=end_date,
        limit=limit, offset=offset, sort_order=sort_order,
    )
    return await service.list_logs(principal, filters)


@router.get("/agent-logs/{log_id}", response_model=AgentLogResponse)
async def get_agent_log(
    log_id: str,
    principal: Principal = Depends(require_user),
    service: AgentLogService = Depends(get_agent_log_service)
):
    """Get agent log by ID"""
    return await service.get_log(principal, log_id)


@router.delete("/agent-logs/{log_id}", status_code=204)
async def delete_agent_log(
    log_id: str,
    principal: Principal = Depends(require_user),
    service: AgentLogService = Depends(get_agent_log_service)
):
    """Delete agent log"""
    await service.delete_log(principal, log_id)
    return None
