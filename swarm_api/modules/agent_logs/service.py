import logging

from fastapi import HTTPException

from swarm_api.config import settings
from swarm_api.core.permission_validator import LOG_AGENT_KEY
from swarm_api.core.secure_filters import Eq, Gte, Lte, normalize_search
from swarm_api.core.secured_service import SecuredService
from swarm_api.core.security import Operation, Principal, ResourceKind
from swarm_api.database.supabase_client import execute
from swarm_api.modules.agent_logs.schemas import (
    AgentLogCreate, AgentLogResponse, AgentLogFilters, AgentLogListResponse
)

logger = logging.getLogger(__name__)

LOG_COLUMNS = f"*, {LOG_AGENT_KEY}!inner(agent_id, agent_name, user_id, company_id, is_public)"


class AgentLogService(SecuredService):
    resource = ResourceKind.AGENT_LOG

    async def add_log(self, principal: Principal, agent_id: str, log_data: AgentLogCreate) -> AgentLogResponse:
        """Append a log line to an agent the caller can access"""
        payload = log_data.model_dump(exclude_none=True, mode="json")
        payload["agent_id"] = agent_id
        payload["user_id"] = principal.user_id
        await self.authorize(principal, Operation.CREATE, data={"agent_id": agent_id, "log_type": payload["log_type"]})

        async def _add():
            result = await execute(self.supabase.table("agent_logs").insert(payload), "agent log insert")
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to add agent log")
            return AgentLogResponse(**result.data[0])

        return await self.run(principal, "add_agent_log", _add, agent_id=agent_id, log_type=payload["log_type"])

    async def list_logs(self, principal: Principal, filters: AgentLogFilters) -> AgentLogListResponse:
        """Logs of agents the caller owns (or administers through a company), newest first"""
        window = normalize_search(
            filters.limit, filters.offset, "created_at", filters.sort_order,
            allowed_sort_fields=("created_at",),
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
        )
        search = []
        if filters.agent_id:
            search.append(Eq("agent_id", filters.agent_id))
        if filters.user_id:
            search.append(Eq("user_id", filters.user_id))
        if filters.session_id:
            search.append(Eq("session_id", filters.session_id))
        if filters.start_date:
            search.append(Gte("created_at", filters.start_date.isoformat()))
        if filters.end_date:
            search.append(Lte("created_at", filters.end_date.isoformat()))

        async def _list():
            predicate = await self.access_filter(principal, *search)
            rows, total = await self.fetch_page("agent_logs", LOG_COLUMNS, predicate, window, reference_table=LOG_AGENT_KEY)
            return AgentLogListResponse(
                logs=[AgentLogResponse(**row) for row in rows],
                total_count=total,
                has_more=window.offset + window.limit < total,
            )

        return await self.run(principal, "list_agent_logs", _list, agent_id=filters.agent_id)

    async def get_log(self, principal: Principal, log_id: str) -> AgentLogResponse:
        """Get a single log line"""
        await self.authorize(principal, Operation.READ, resource_id=log_id)

        async def _get():
            result = await execute(
                self.supabase.table("agent_logs")
                    .select(LOG_COLUMNS)
                    .eq("agent_log_id", log_id)
                    .limit(1),
                "agent log get",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Agent log not found")
            return AgentLogResponse(**result.data[0])

        return await self.run(principal, "get_agent_log", _get, resource_id=log_id)

    async def delete_log(self, principal: Principal, log_id: str) -> bool:
        """Delete a log line"""
        await self.authorize(principal, Operation.DELETE, resource_id=log_id)

        async def _delete():
            result = await execute(
                self.supabase.table("agent_logs")
                    .delete()
                    .eq("agent_log_id", log_id),
                "agent log delete",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Agent log not found")
            return True

        return await self.run(principal, "delete_agent_log", _delete, resource_id=log_id)
