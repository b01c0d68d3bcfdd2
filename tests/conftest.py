"""Shared fixtures: an in-memory data store and the access-control core wired on top of it."""

from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

import pytest

from swarm_api.core.membership import MembershipResolver
from swarm_api.core.permission_cache import InMemoryPermissionCache
from swarm_api.core.permission_validator import PermissionValidator
from swarm_api.core.secure_filters import SecureFilterBuilder
from swarm_api.core.security import OwnershipFact, ResourceKind

ADMIN_ROLE_NAMES = ("admin", "owner", "company_admin")


class InMemoryDataStore:
    """DataStore fake with the same answers the Supabase tables would give."""

    def __init__(self):
        self.facts: Dict[Tuple[ResourceKind, str], OwnershipFact] = {}
        self.logs: Dict[str, str] = {}
        self.memberships: Dict[Tuple[str, str], str] = {}
        self.role_permissions: Dict[str, Set[str]] = defaultdict(set)
        self.calls: Dict[str, int] = defaultdict(int)
        self.fail_with: Optional[BaseException] = None

    # Setup helpers

    def add(self, kind: ResourceKind, resource_id: str, owner: Optional[str] = None,
            company: Optional[str] = None, is_public: bool = False) -> OwnershipFact:
        fact = OwnershipFact(id=resource_id, owner_user_id=owner, company_id=company, is_public=is_public)
        self.facts[(kind, resource_id)] = fact
        return fact

    def add_log(self, log_id: str, agent_id: str) -> None:
        self.logs[log_id] = agent_id

    def join(self, user_id: str, company_id: str, role: str = "user") -> None:
        self.memberships[(user_id, company_id)] = role

    def grant(self, role: str, *permissions: str) -> None:
        self.role_permissions[role].update(permissions)

    def _record(self, name: str) -> None:
        self.calls[name] += 1
        if self.fail_with is not None:
            raise self.fail_with

    # DataStore

    async def get_ownership(self, resource: ResourceKind, resource_id: str) -> Optional[OwnershipFact]:
        self._record("get_ownership")
        if resource == ResourceKind.AGENT_LOG:
            agent_id = self.logs.get(resource_id)
            if agent_id is None:
                return None
            agent = self.facts.get((ResourceKind.AGENT, agent_id))
            if agent is None:
                return None
            return OwnershipFact(resource_id, agent.owner_user_id, agent.company_id, agent.is_public)
        return self.facts.get((resource, resource_id))

    async def is_member(self, user_id: str, company_id: str) -> bool:
        self._record("is_member")
        return (user_id, company_id) in self.memberships

    async def is_admin(self, user_id: str, company_id: str) -> bool:
        self._record("is_admin")
        return self.memberships.get((user_id, company_id)) in ADMIN_ROLE_NAMES

    async def admin_companies_of(self, user_id: str) -> List[str]:
        self._record("admin_companies_of")
        return [c for (u, c), role in self.memberships.items() if u == user_id and role in ADMIN_ROLE_NAMES]

    async def member_companies_of(self, user_id: str) -> List[str]:
        self._record("member_companies_of")
        return [c for (u, c) in self.memberships if u == user_id]

    async def role_of(self, user_id: str, company_id: str) -> Optional[str]:
        self._record("role_of")
        return self.memberships.get((user_id, company_id))

    async def has_named_permission(self, user_id: str, permission_name: str) -> bool:
        self._record("has_named_permission")
        roles = {role for (u, _), role in self.memberships.items() if u == user_id}
        return any(permission_name in self.role_permissions[role] for role in roles)

    async def count_admins(self, company_id: str) -> int:
        self._record("count_admins")
        return sum(1 for (_, c), role in self.memberships.items() if c == company_id and role in ADMIN_ROLE_NAMES)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store():
    return InMemoryDataStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryPermissionCache(ttl_seconds=60, clock=clock)


@pytest.fixture
def membership(store, cache):
    return MembershipResolver(store, cache)


@pytest.fixture
def validator(membership):
    return PermissionValidator(membership)


@pytest.fixture
def filters(membership):
    return SecureFilterBuilder(membership)
