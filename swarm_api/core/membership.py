"""
Company/user membership questions asked by the decision engine and the
secure-filter builders. Only named-permission answers are cached.
"""

import asyncio
import logging
from typing import Optional, Set

from swarm_api.core.data_store import DataStore
from swarm_api.core.permission_cache import PermissionCache
from swarm_api.core.security import ResourceKind

logger = logging.getLogger(__name__)


class MembershipResolver:
    def __init__(self, store: DataStore, cache: PermissionCache, cache_ttl_seconds: Optional[float] = None):
        self.store = store
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds

    async def is_member(self, user_id: str, company_id: str) -> bool:
        if not company_id:
            return False
        return await self.store.is_member(user_id, company_id)

    async def is_admin(self, user_id: str, company_id: str) -> bool:
        if not company_id:
            return False
        return await self.store.is_admin(user_id, company_id)

    async def admin_companies(self, user_id: str) -> Set[str]:
        return set(await self.store.admin_companies_of(user_id))

    async def member_companies(self, user_id: str) -> Set[str]:
        # Admin memberships are memberships too
        return set(await self.store.member_companies_of(user_id))

    async def role_of(self, user_id: str, company_id: str) -> Optional[str]:
        return await self.store.role_of(user_id, company_id)

    async def count_admins(self, company_id: str) -> int:
        return await self.store.count_admins(company_id)

    async def has_permission(self, user_id: str, permission_name: str) -> bool:
        """Cache first; a miss or expired entry goes to the store and repopulates the cache."""
        cached = self.cache.get(user_id, permission_name)
        if cached is not None:
            logger.debug(f"Permission cache hit: {user_id} {permission_name}={cached}")
            return cached
        has_permission = await self.store.has_named_permission(user_id, permission_name)
        self.cache.put(user_id, permission_name, has_permission, self.cache_ttl_seconds)
        return has_permission

    async def shares_admin_company(self, admin_user_id: str, target_user_id: str) -> bool:
        """True if target_user_id belongs to a company that admin_user_id administers."""
        admin_companies, target_companies = await asyncio.gather(
            self.admin_companies(admin_user_id),
            self.member_companies(target_user_id),
        )
        return bool(admin_companies & target_companies)

    async def can_access_agent(self, user_id: str, agent_id: str) -> bool:
        """Owner, member of the agent's company, or the agent is public."""
        agent = await self.store.get_ownership(ResourceKind.AGENT, agent_id)
        if agent is None:
            return False
        if agent.owner_user_id == user_id:
            return True
        if agent.company_id and await self.is_member(user_id, agent.company_id):
            return True
        return agent.is_public

    def invalidate_permissions(self, user_id: Optional[str] = None) -> None:
        self.cache.invalidate(user_id)
