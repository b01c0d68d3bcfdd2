"""Base class for services whose operations go through access checks and the execution wrapper."""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from supabase import Client

from swarm_api.core.execution import ExecutionContext, audit_info
from swarm_api.core.permission_validator import PermissionValidator
from swarm_api.core.secure_filters import (
    NEVER,
    Predicate,
    SecureFilterBuilder,
    SearchWindow,
    all_of,
    apply_predicate,
)
from swarm_api.core.security import Operation, Principal, ResourceKind, SecurityContext
from swarm_api.database.supabase_client import execute

T = TypeVar("T")


class SecuredService:
    resource: ResourceKind

    def __init__(
        self,
        supabase: Client,
        validator: PermissionValidator,
        filters: SecureFilterBuilder,
        execution: ExecutionContext,
    ):
        self.supabase = supabase
        self.validator = validator
        self.filters = filters
        self.execution = execution

    async def authorize(
        self,
        principal: Principal,
        operation: Operation,
        resource_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        require_company: bool = False,
        resource: Optional[ResourceKind] = None,
    ) -> None:
        await self.validator.validate(SecurityContext(
            user_id=principal.user_id,
            user_role=principal.role,
            operation=operation,
            resource=resource or self.resource,
            resource_id=resource_id,
            company_id=principal.company_id,
            data=data,
            require_company=require_company,
        ))

    async def run(
        self,
        principal: Principal,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        resource_id: Optional[str] = None,
        **metadata: Any,
    ) -> T:
        return await self.execution.execute(
            fn, audit_info(principal, operation, self.resource.value, resource_id, **metadata)
        )

    async def access_filter(self, principal: Principal, *search: Predicate) -> Predicate:
        """Access predicate for the caller ANDed with any search predicates."""
        access = await self.filters.build_filter(
            self.resource, principal.role, principal.user_id, principal.company_id
        )
        return all_of(access, *search)

    async def fetch_page(
        self,
        table: str,
        columns: str,
        predicate: Predicate,
        window: SearchWindow,
        reference_table: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """One page of rows plus the exact total count; NEVER short-circuits without a query."""
        if predicate is NEVER:
            return [], 0
        query = self.supabase.table(table).select(columns, count="exact")
        query = apply_predicate(query, predicate, reference_table)
        query = query.order(window.sort_by, desc=window.descending)\
            .range(window.offset, window.offset + window.limit - 1)
        result = await execute(query, f"{table} search")
        total = result.count if result.count is not None else len(result.data or [])
        return result.data or [], total
