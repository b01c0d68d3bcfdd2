from datetime import datetime, timezone

from fastapi import HTTPException

from swarm_api.config import settings
from swarm_api.core.secure_filters import Eq, ILike, any_of, normalize_search
from swarm_api.core.secured_service import SecuredService
from swarm_api.core.security import Operation, Principal, ResourceKind
from swarm_api.database.supabase_client import execute
from swarm_api.modules.agents.schemas import (
    AgentCreate, AgentUpdate, AgentResponse, AgentSearchParams, AgentSearchResponse
)

AGENT_SORT_FIELDS = ("created_at", "updated_at", "agent_name")


class AgentService(SecuredService):
    resource = ResourceKind.AGENT

    async def create_agent(self, principal: Principal, agent_data: AgentCreate) -> AgentResponse:
        """Create an agent owned by the caller, or by another user for company admins"""
        payload = agent_data.model_dump(exclude_none=True, mode="json")
        payload.setdefault("user_id", principal.user_id)
        if principal.company_id:
            payload.setdefault("company_id", principal.company_id)
        await self.authorize(principal, Operation.CREATE, data=payload)

        async def _create():
            result = await execute(self.supabase.table("agents").insert(payload), "agent insert")
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create agent")
            return AgentResponse(**result.data[0])

        return await self.run(
            principal, "create_agent", _create,
            agent_name=payload["agent_name"], target_user_id=payload["user_id"],
        )

    async def get_agent(self, principal: Principal, agent_id: str) -> AgentResponse:
        """Get agent by ID"""
        await self.authorize(principal, Operation.READ, resource_id=agent_id)

        async def _get():
            result = await execute(
                self.supabase.table("agents")
                    .select("*")
                    .eq("agent_id", agent_id)
                    .limit(1),
                "agent get",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Agent not found")
            return AgentResponse(**result.data[0])

        return await self.run(principal, "get_agent", _get, resource_id=agent_id)

    async def update_agent(self, principal: Principal, agent_id: str, agent_data: AgentUpdate) -> AgentResponse:
        """Update agent; owners, and company admins for agents of their companies"""
        await self.authorize(principal, Operation.UPDATE, resource_id=agent_id)
        update_data = agent_data.model_dump(exclude_unset=True, mode="json")
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        async def _update():
            result = await execute(
                self.supabase.table("agents")
                    .update(update_data)
                    .eq("agent_id", agent_id),
                "agent update",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Agent not found")
            return AgentResponse(**result.data[0])

        return await self.run(principal, "update_agent", _update, resource_id=agent_id, fields=sorted(update_data))

    async def delete_agent(self, principal: Principal, agent_id: str) -> bool:
        """Delete agent"""
        await self.authorize(principal, Operation.DELETE, resource_id=agent_id)

        async def _delete():
            result = await execute(
                self.supabase.table("agents")
                    .delete()
                    .eq("agent_id", agent_id),
                "agent delete",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Agent not found")
            return True

        return await self.run(principal, "delete_agent", _delete, resource_id=agent_id)

    async def search_agents(self, principal: Principal, params: AgentSearchParams) -> AgentSearchResponse:
        """Search agents visible to the caller; search criteria only narrow the access scope"""
        window = normalize_search(
            params.limit, params.offset, params.sort_by, params.sort_order,
            allowed_sort_fields=AGENT_SORT_FIELDS,
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
        )
        search = []
        if params.query:
            pattern = f"%{params.query}%"
            search.append(any_of(ILike("agent_name", pattern), ILike("description", pattern)))
        if params.company_id:
            search.append(Eq("company_id", params.company_id))
        if params.category_id:
            search.append(Eq("category_id", params.category_id))
        if params.is_public is not None:
            search.append(Eq("is_public", params.is_public))

        async def _search():
            predicate = await self.access_filter(principal, *search)
            rows, total = await self.fetch_page("agents", "*", predicate, window)
            applied = params.model_dump(exclude_none=True)
            applied.update(
                limit=window.limit,
                offset=window.offset,
                sort_by=window.sort_by,
                sort_order="desc" if window.descending else "asc",
            )
            return AgentSearchResponse(
                agents=[AgentResponse(**row) for row in rows],
                total_count=total,
                has_more=window.offset + window.limit < total,
                is_default_search=params.is_default_search,
                applied_filters=applied,
            )

        return await self.run(principal, "search_agents", _search, query=params.query)
