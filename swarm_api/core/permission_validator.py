"""
Access decision engine.

validate() answers one question per call: may this (user, role) perform this
operation on this resource? Row-level narrowing for list endpoints is done by
the secure-filter builders; here a decision is binary.

Validators are looked up in a (resource, role) table. Every validator returns
an explicit Allowed/Denied result; exceptions are reserved for configuration
defects and data-store failures.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from swarm_api.core.data_store import OWNERSHIP_SOURCES, OwnershipSource
from swarm_api.core.exceptions import (
    AccessDeniedError,
    CompanyContextRequiredError,
    ConfigurationError,
    SecurityError,
    UpstreamUnavailableError,
)
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.security import (
    ALLOWED,
    Decision,
    Denied,
    Operation,
    OwnershipFact,
    ResourceKind,
    Role,
    SecurityContext,
    parse_operation,
    parse_resource,
    parse_role,
)

logger = logging.getLogger(__name__)

Validator = Callable[[SecurityContext, Operation], Awaitable[Decision]]

# Resources whose rows carry (owner, company, is_public) and share one rule set
OWNED_RESOURCES = (
    ResourceKind.AGENT,
    ResourceKind.ORGANIZATION,
    ResourceKind.TEAM,
    ResourceKind.TOOL,
    ResourceKind.LLMSTXT,
)

# Nested key under which a log row carries its agent's ownership columns
LOG_AGENT_KEY = "agents"

NOT_FOUND = "resource not found"


class PermissionValidator:
    def __init__(self, membership: MembershipResolver):
        self.membership = membership
        self._validators: Dict[ResourceKind, Dict[Role, Validator]] = self._build_validators()

    def _build_validators(self) -> Dict[ResourceKind, Dict[Role, Validator]]:
        owned = {
            Role.PUBLIC: self._public_owned,
            Role.USER: self._user_owned,
            Role.COMPANY_ADMIN: self._company_admin_owned,
            Role.ADMIN: self._admin,
        }
        validators = {kind: dict(owned) for kind in OWNED_RESOURCES}
        validators[ResourceKind.COMPANY] = {
            Role.PUBLIC: self._deny_public,
            Role.USER: self._user_company,
            Role.COMPANY_ADMIN: self._company_admin_company,
            Role.ADMIN: self._admin,
        }
        validators[ResourceKind.AGENT_LOG] = {
            Role.PUBLIC: self._deny_public,
            Role.USER: self._user_agent_log,
            Role.COMPANY_ADMIN: self._company_admin_agent_log,
            Role.ADMIN: self._admin,
        }
        validators[ResourceKind.WAITLIST] = {
            Role.PUBLIC: self._deny_public,
            Role.USER: self._user_waitlist,
            Role.COMPANY_ADMIN: self._user_waitlist,
            Role.ADMIN: self._admin,
        }
        return validators

    @property
    def resources(self):
        return set(self._validators)

    async def validate(self, context: SecurityContext) -> None:
        """Return normally when allowed; raise AccessDeniedError otherwise."""
        decision = await self.check(context)
        if not decision.allowed:
            raise AccessDeniedError(
                f"Access denied: {context.user_role} cannot {context.operation} {context.resource} ({decision.reason})",
                context,
            )
        logger.debug(f"Allowed {context.user_role} to {context.operation} {context.resource}")

    async def is_allowed(self, context: SecurityContext) -> bool:
        return (await self.check(context)).allowed

    async def check(self, context: SecurityContext) -> Decision:
        resource, role, operation = self._resolve(context)

        if context.require_company and not context.company_id:
            raise CompanyContextRequiredError(
                "This action requires a company context. Please provide an x-company-id header.",
                context.describe(),
            )

        validator = self._validators[resource][role]
        try:
            return await validator(context, operation)
        except (SecurityError, ConfigurationError, UpstreamUnavailableError):
            raise
        except Exception as e:
            # Timeouts and driver errors never turn into an allow or a quiet deny
            raise UpstreamUnavailableError(f"Could not decide access to {resource.value}", cause=e) from e

    def _resolve(self, context: SecurityContext) -> Tuple[ResourceKind, Role, Operation]:
        resource = parse_resource(context.resource)
        if resource is None or resource not in self._validators:
            raise ConfigurationError(f"No validator found for resource: {context.resource}", context.describe())
        role = parse_role(context.user_role)
        if role is None or role not in self._validators[resource]:
            raise ConfigurationError(f"Unrecognized role for {resource.value}: {context.user_role}", context.describe())
        operation = parse_operation(context.operation)
        if operation is None:
            raise ConfigurationError(f"Unrecognized operation: {context.operation}", context.describe())
        return resource, role, operation

    # Ownership facts

    async def _ownership(self, context: SecurityContext) -> Tuple[bool, Optional[OwnershipFact]]:
        """(known, fact): known is False for list-style calls that carry no target at all."""
        resource = parse_resource(context.resource)
        if context.resource_id:
            return True, await self.membership.store.get_ownership(resource, context.resource_id)
        fact = _fact_from_data(context, OWNERSHIP_SOURCES[resource])
        return fact is not None, fact

    async def _log_ownership(self, context: SecurityContext) -> Tuple[bool, Optional[OwnershipFact]]:
        data = context.data or {}
        if context.resource_id:
            return True, await self.membership.store.get_ownership(ResourceKind.AGENT_LOG, context.resource_id)
        agent = data.get(LOG_AGENT_KEY)
        if isinstance(agent, Mapping):
            return True, OwnershipFact(
                id=str(data.get("agent_log_id") or data.get("agent_id") or ""),
                owner_user_id=agent.get("user_id"),
                company_id=agent.get("company_id"),
                is_public=agent.get("is_public") is True,
            )
        if data.get("agent_id"):
            return True, await self.membership.store.get_ownership(ResourceKind.AGENT, data["agent_id"])
        return False, None

    async def _visible_to_member(self, user_id: str, fact: OwnershipFact) -> Decision:
        if fact.is_public or fact.owner_user_id == user_id:
            return ALLOWED
        if fact.company_id and await self.membership.is_member(user_id, fact.company_id):
            return ALLOWED
        return Denied("not owner, not public and no shared company")

    # Shared role validators

    async def _deny_public(self, context: SecurityContext, operation: Operation) -> Decision:
        return Denied(f"public callers have no access to {context.resource}")

    async def _admin(self, context: SecurityContext, operation: Operation) -> Decision:
        # System admins are not superusers: the named permission is always required
        permission = f"{parse_resource(context.resource).value}:{operation.value}"
        if await self.membership.has_permission(context.user_id, permission):
            return ALLOWED
        return Denied(f"missing {permission} permission")

    # agent, organization, team, tool, llmstxt

    async def _public_owned(self, context: SecurityContext, operation: Operation) -> Decision:
        if operation != Operation.READ:
            return Denied("public callers are read-only")
        data = context.data or {}
        if "is_public" in data:
            return ALLOWED if data["is_public"] is True else Denied("resource is not public")
        if context.resource_id:
            fact = await self.membership.store.get_ownership(parse_resource(context.resource), context.resource_id)
            if fact is None:
                return Denied(NOT_FOUND)
            return ALLOWED if fact.is_public else Denied("resource is not public")
        return ALLOWED

    async def _user_owned(self, context: SecurityContext, operation: Operation) -> Decision:
        if operation == Operation.CREATE:
            return await self._member_create(context)
        known, fact = await self._ownership(context)
        return await self._member_owned_access(context.user_id, operation, known, fact)

    async def _member_create(self, context: SecurityContext) -> Decision:
        user_id = context.user_id
        source = OWNERSHIP_SOURCES[parse_resource(context.resource)]
        data = context.data or {}
        target = data.get(source.owner_column)
        if target and target != user_id:
            return Denied("can only create resources for yourself")
        company_id = data.get("company_id")
        if company_id and not await self.membership.is_member(user_id, company_id):
            return Denied("not a member of the target company")
        return ALLOWED

    async def _member_owned_access(
        self, user_id: str, operation: Operation, known: bool, fact: Optional[OwnershipFact]
    ) -> Decision:
        if operation == Operation.READ:
            if not known:
                return ALLOWED
            if fact is None:
                return Denied(NOT_FOUND)
            return await self._visible_to_member(user_id, fact)

        if fact is not None and fact.owner_user_id == user_id:
            return ALLOWED
        return Denied(NOT_FOUND if known and fact is None else "only the owner can modify this resource")

    async def _company_admin_owned(self, context: SecurityContext, operation: Operation) -> Decision:
        user_id = context.user_id
        if operation == Operation.CREATE:
            decision = await self._member_create(context)
            if decision.allowed:
                return decision
            data = context.data or {}
            source = OWNERSHIP_SOURCES[parse_resource(context.resource)]
            target = data.get(source.owner_column)
            company_id = data.get("company_id")
            if not target or target == user_id:
                return decision
            if company_id:
                is_admin, target_is_member = await asyncio.gather(
                    self.membership.is_admin(user_id, company_id),
                    self.membership.is_member(target, company_id),
                )
                return ALLOWED if is_admin and target_is_member else Denied("target user is not in a company you administer")
            if await self.membership.shares_admin_company(user_id, target):
                return ALLOWED
            return Denied("target user is not in a company you administer")

        known, fact = await self._ownership(context)
        decision = await self._member_owned_access(user_id, operation, known, fact)
        if decision.allowed:
            return decision
        if fact is not None and fact.company_id and await self.membership.is_admin(user_id, fact.company_id):
            return ALLOWED
        return decision

    # company

    async def _user_company(self, context: SecurityContext, operation: Operation) -> Decision:
        if operation == Operation.CREATE:
            return ALLOWED
        if operation == Operation.READ:
            company_id = context.resource_id or (context.data or {}).get("company_id")
            if not company_id:
                return ALLOWED
            if await self.membership.is_member(context.user_id, company_id):
                return ALLOWED
            return Denied("not a member of this company")
        return Denied("members cannot modify or delete companies")

    async def _company_admin_company(self, context: SecurityContext, operation: Operation) -> Decision:
        decision = await self._user_company(context, operation)
        if decision.allowed or operation != Operation.UPDATE:
            return decision
        company_id = context.resource_id or (context.data or {}).get("company_id") or context.company_id
        if company_id and await self.membership.is_admin(context.user_id, company_id):
            return ALLOWED
        return Denied("not an admin of this company")

    # agent_log

    async def _user_agent_log(self, context: SecurityContext, operation: Operation) -> Decision:
        user_id = context.user_id
        if operation == Operation.CREATE:
            agent_id = (context.data or {}).get("agent_id")
            if not agent_id:
                return Denied("agent_id is required")
            if await self.membership.can_access_agent(user_id, agent_id):
                return ALLOWED
            return Denied("no access to the agent")

        known, fact = await self._log_ownership(context)
        return _owner_log_access(user_id, operation, known, fact)

    async def _company_admin_agent_log(self, context: SecurityContext, operation: Operation) -> Decision:
        if operation == Operation.CREATE:
            return await self._user_agent_log(context, operation)
        known, fact = await self._log_ownership(context)
        decision = _owner_log_access(context.user_id, operation, known, fact)
        if decision.allowed:
            return decision
        if fact is not None and fact.company_id and await self.membership.is_admin(context.user_id, fact.company_id):
            return ALLOWED
        return decision

    # waitlist

    async def _user_waitlist(self, context: SecurityContext, operation: Operation) -> Decision:
        user_id = context.user_id
        if operation == Operation.CREATE:
            target = (context.data or {}).get("user_id")
            if target and target != user_id:
                return Denied("can only join the waitlist for yourself")
            return ALLOWED
        if operation == Operation.DELETE:
            return Denied("waitlist entries cannot be deleted by members")

        known, fact = await self._ownership(context)
        if not known:
            return ALLOWED if operation == Operation.READ else Denied("waitlist entry id is required")
        if fact is not None and fact.owner_user_id == user_id:
            return ALLOWED
        return Denied(NOT_FOUND if fact is None else "not your waitlist entry")


def _owner_log_access(user_id: str, operation: Operation, known: bool, fact: Optional[OwnershipFact]) -> Decision:
    if not known:
        return ALLOWED if operation == Operation.READ else Denied("agent_id is required")
    if fact is None:
        return Denied(NOT_FOUND)
    if fact.owner_user_id == user_id:
        return ALLOWED
    return Denied("only the agent owner can access its logs")


def _fact_from_data(context: SecurityContext, source: OwnershipSource) -> Optional[OwnershipFact]:
    """Build an ownership fact from row-shaped data; None when the data names no owner, company or visibility."""
    data: Dict[str, Any] = context.data or {}
    keys = [c for c in (source.owner_column, source.company_column, source.public_column) if c]
    if not any(k in data for k in keys):
        return None
    return OwnershipFact(
        id=str(data.get(source.id_column) or ""),
        owner_user_id=data.get(source.owner_column) if source.owner_column else None,
        company_id=data.get(source.company_column) if source.company_column else None,
        is_public=data.get(source.public_column) is True if source.public_column else False,
    )
