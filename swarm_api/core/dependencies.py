"""
Core dependencies: caller resolution, company mode, and the shared
access-control singletons handed to the services.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from swarm_api.config import settings
from swarm_api.core.audit import LoggingAuditSink, SupabaseAuditSink
from swarm_api.core.data_store import DataStore, SupabaseDataStore
from swarm_api.core.exceptions import AccessDeniedError, CompanyContextRequiredError
from swarm_api.core.execution import ExecutionContext
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.permission_cache import InMemoryPermissionCache, PermissionCache
from swarm_api.core.permission_validator import PermissionValidator
from swarm_api.core.secure_filters import SecureFilterBuilder
from swarm_api.core.security import ANONYMOUS_USER_ID, Principal, Role
from swarm_api.database.supabase_client import get_service_supabase, get_supabase
from swarm_api.modules.auth.service import AuthService

logger = logging.getLogger(__name__)

# Token is optional: callers without one act as the public role
security = HTTPBearer(auto_error=False)


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


async def get_current_user_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[Dict[str, Any]]:
    """Verified Supabase user for the bearer token, or None when no token was sent"""
    if credentials is None:
        return None
    return await run_in_threadpool(auth_service.get_current_user, credentials.credentials)


def get_company_id(request: Request) -> Optional[str]:
    """Selected company from the company header; absent means individual mode"""
    value = request.headers.get(settings.company_header)
    if value is None:
        return None
    return value.strip() or None


def get_current_principal(
    user_data: Optional[Dict[str, Any]] = Depends(get_current_user_data),
    company_id: Optional[str] = Depends(get_company_id)
) -> Principal:
    if user_data is None:
        return Principal(user_id=ANONYMOUS_USER_ID, role=Role.PUBLIC, company_id=company_id)
    return Principal(
        user_id=user_data["id"],
        role=AuthService.resolve_role(user_data),
        email=user_data.get("email"),
        company_id=company_id,
    )


def require_user(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Reject anonymous callers"""
    if principal.is_anonymous:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_company_mode(principal: Principal = Depends(require_user)) -> Principal:
    """Authenticated caller acting inside a company selected by the company header"""
    if not principal.company_id:
        raise CompanyContextRequiredError(
            f"This action requires a company context. Please provide an {settings.company_header} header.",
            {"user_id": principal.user_id},
        )
    return principal


@lru_cache()
def get_permission_cache() -> PermissionCache:
    return InMemoryPermissionCache(ttl_seconds=settings.permission_cache_ttl_seconds)


def get_data_store(supabase: Client = Depends(get_service_supabase)) -> DataStore:
    return SupabaseDataStore(supabase, settings.get_admin_role_names())


def get_membership(
    store: DataStore = Depends(get_data_store),
    cache: PermissionCache = Depends(get_permission_cache)
) -> MembershipResolver:
    return MembershipResolver(store, cache, settings.permission_cache_ttl_seconds)


def get_permission_validator(membership: MembershipResolver = Depends(get_membership)) -> PermissionValidator:
    return PermissionValidator(membership)


def get_filter_builder(membership: MembershipResolver = Depends(get_membership)) -> SecureFilterBuilder:
    return SecureFilterBuilder(membership)


def require_permission(required_permission: str):
    """Factory function to create a named-permission check dependency"""
    async def check_permission(
        principal: Principal = Depends(require_user),
        membership: MembershipResolver = Depends(get_membership)
    ) -> Principal:
        if not await membership.has_permission(principal.user_id, required_permission):
            raise AccessDeniedError(
                f"Missing {required_permission} permission",
                {"user_id": principal.user_id, "permission": required_permission},
            )
        return principal
    return check_permission


@lru_cache()
def get_execution_context() -> ExecutionContext:
    """One context per process so operation ids stay unique"""
    if settings.audit_sink == "supabase":
        return ExecutionContext(SupabaseAuditSink(get_service_supabase(), settings.audit_table))
    return ExecutionContext(LoggingAuditSink())
