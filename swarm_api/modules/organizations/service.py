from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException

from swarm_api.config import settings
from swarm_api.core.secure_filters import Eq, ILike, any_of, normalize_search
from swarm_api.core.secured_service import SecuredService
from swarm_api.core.security import Operation, Principal, ResourceKind
from swarm_api.database.supabase_client import execute
from swarm_api.modules.organizations.schemas import (
    OrganizationCreate, OrganizationUpdate, OrganizationResponse, OrganizationListResponse
)

ORGANIZATION_SORT_FIELDS = ("created_at", "updated_at", "organization_name")


class OrganizationService(SecuredService):
    resource = ResourceKind.ORGANIZATION

    async def create_organization(self, principal: Principal, org_data: OrganizationCreate) -> OrganizationResponse:
        """Create organization"""
        payload = org_data.model_dump(exclude_none=True, mode="json")
        payload.setdefault("user_id", principal.user_id)
        if principal.company_id:
            payload.setdefault("company_id", principal.company_id)
        await self.authorize(principal, Operation.CREATE, data=payload)

        async def _create():
            result = await execute(self.supabase.table("organizations").insert(payload), "organization insert")
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create organization")
            return OrganizationResponse(**result.data[0])

        return await self.run(
            principal, "create_organization", _create,
            organization_name=payload["organization_name"], target_user_id=payload["user_id"],
        )

    async def get_organization(self, principal: Principal, organization_id: str) -> OrganizationResponse:
        """Get organization by ID"""
        await self.authorize(principal, Operation.READ, resource_id=organization_id)

        async def _get():
            result = await execute(
                self.supabase.table("organizations")
                    .select("*")
                    .eq("organization_id", organization_id)
                    .limit(1),
                "organization get",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Organization not found")
            return OrganizationResponse(**result.data[0])

        return await self.run(principal, "get_organization", _get, resource_id=organization_id)

    async def update_organization(
        self, principal: Principal, organization_id: str, org_data: OrganizationUpdate
    ) -> OrganizationResponse:
        """Update organization"""
        await self.authorize(principal, Operation.UPDATE, resource_id=organization_id)
        update_data = org_data.model_dump(exclude_unset=True, mode="json")
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        async def _update():
            result = await execute(
                self.supabase.table("organizations")
                    .update(update_data)
                    .eq("organization_id", organization_id),
                "organization update",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Organization not found")
            return OrganizationResponse(**result.data[0])

        return await self.run(principal, "update_organization", _update, resource_id=organization_id)

    async def delete_organization(self, principal: Principal, organization_id: str) -> bool:
        """Delete organization"""
        await self.authorize(principal, Operation.DELETE, resource_id=organization_id)

        async def _delete():
            result = await execute(
                self.supabase.table("organizations")
                    .delete()
                    .eq("organization_id", organization_id),
                "organization delete",
            )
            if not result.data:
                raise HTTPException(status_code=404, detail="Organization not found")
            return True

        return await self.run(principal, "delete_organization", _delete, resource_id=organization_id)

    async def search_organizations(
        self,
        principal: Principal,
        search: Optional[str] = None,
        company_id: Optional[str] = None,
        is_public: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> OrganizationListResponse:
        """Organizations visible to the caller, narrowed by the optional criteria"""
        window = normalize_search(
            limit, offset, sort_by, sort_order,
            allowed_sort_fields=ORGANIZATION_SORT_FIELDS,
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
        )
        criteria = []
        if search:
            pattern = f"%{search}%"
            criteria.append(any_of(ILike("organization_name", pattern), ILike("description", pattern)))
        if company_id:
            criteria.append(Eq("company_id", company_id))
        if is_public is not None:
            criteria.append(Eq("is_public", is_public))

        async def _search():
            predicate = await self.access_filter(principal, *criteria)
            rows, total = await self.fetch_page("organizations", "*", predicate, window)
            return OrganizationListResponse(
                organizations=[OrganizationResponse(**row) for row in rows],
                total_count=total,
                has_more=window.offset + window.limit < total,
            )

        return await self.run(principal, "search_organizations", _search, search=search)
