"""
Row-level filters for list and search endpoints.

A filter is a small predicate tree (Eq, In, ILike, Gte, Lte, And, Or and the
ALWAYS/NEVER constants). The same tree can be evaluated against an in-memory
row with matches() or pushed down to PostgREST with apply_predicate(), so every row a
filter lets through is also a row the decision engine would allow a read on.

Access predicates are always ANDed with caller-supplied search predicates;
search input can narrow a result set but never widen it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from swarm_api.core.data_store import OWNERSHIP_SOURCES
from swarm_api.core.exceptions import ConfigurationError
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.permission_validator import LOG_AGENT_KEY, OWNED_RESOURCES
from swarm_api.core.security import ResourceKind, Role, parse_resource, parse_role

logger = logging.getLogger(__name__)

_RESERVED = re.compile(r'[,.:()"\s]')


class Predicate:
    def matches(self, row: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def render(self, strip_prefix: str = "") -> str:
        """PostgREST logic-tree fragment, e.g. ``or(is_public.eq.true,user_id.eq.u1)``."""
        raise NotImplementedError


class _Constant(Predicate):
    def __init__(self, value: bool):
        self.value = value

    def matches(self, row: Mapping[str, Any]) -> bool:
        return self.value

    def render(self, strip_prefix: str = "") -> str:
        raise ValueError("Constant predicates cannot be rendered; check for ALWAYS/NEVER first")

    def __repr__(self) -> str:
        return "ALWAYS" if self.value else "NEVER"


ALWAYS = _Constant(True)
NEVER = _Constant(False)


@dataclass(frozen=True)
class Eq(Predicate):
    field: str
    value: Any

    def matches(self, row: Mapping[str, Any]) -> bool:
        return lookup(row, self.field) == self.value

    def render(self, strip_prefix: str = "") -> str:
        name = _column(self.field, strip_prefix)
        if self.value is None:
            return f"{name}.is.null"
        return f"{name}.eq.{_literal(self.value)}"


@dataclass(frozen=True)
class In(Predicate):
    field: str
    values: Tuple[Any, ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return lookup(row, self.field) in self.values

    def render(self, strip_prefix: str = "") -> str:
        items = ",".join(_literal(v) for v in self.values)
        return f"{_column(self.field, strip_prefix)}.in.({items})"


@dataclass(frozen=True)
class ILike(Predicate):
    """Case-insensitive SQL LIKE; ``%`` matches any run of characters and ``_`` a single one."""
    field: str
    pattern: str

    def matches(self, row: Mapping[str, Any]) -> bool:
        value = lookup(row, self.field)
        if value is None:
            return False
        regex = "".join(".*" if c == "%" else "." if c == "_" else re.escape(c) for c in self.pattern)
        return re.fullmatch(regex, str(value), flags=re.IGNORECASE | re.DOTALL) is not None

    def render(self, strip_prefix: str = "") -> str:
        return f"{_column(self.field, strip_prefix)}.ilike.{_literal(self.pattern)}"


@dataclass(frozen=True)
class Gte(Predicate):
    field: str
    value: Any

    def matches(self, row: Mapping[str, Any]) -> bool:
        value = lookup(row, self.field)
        return value is not None and value >= self.value

    def render(self, strip_prefix: str = "") -> str:
        return f"{_column(self.field, strip_prefix)}.gte.{_literal(self.value)}"


@dataclass(frozen=True)
class Lte(Predicate):
    field: str
    value: Any

    def matches(self, row: Mapping[str, Any]) -> bool:
        value = lookup(row, self.field)
        return value is not None and value <= self.value

    def render(self, strip_prefix: str = "") -> str:
        return f"{_column(self.field, strip_prefix)}.lte.{_literal(self.value)}"


@dataclass(frozen=True)
class And(Predicate):
    parts: Tuple[Predicate, ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return all(p.matches(row) for p in self.parts)

    def render(self, strip_prefix: str = "") -> str:
        return "and(" + ",".join(p.render(strip_prefix) for p in self.parts) + ")"


@dataclass(frozen=True)
class Or(Predicate):
    parts: Tuple[Predicate, ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return any(p.matches(row) for p in self.parts)

    def render(self, strip_prefix: str = "") -> str:
        return "or(" + self.render_items(strip_prefix) + ")"

    def render_items(self, strip_prefix: str = "") -> str:
        return ",".join(p.render(strip_prefix) for p in self.parts)


def any_of(*predicates: Predicate) -> Predicate:
    parts = []
    for p in predicates:
        if p is ALWAYS:
            return ALWAYS
        if p is NEVER:
            continue
        parts.extend(p.parts if isinstance(p, Or) else [p])
    if not parts:
        return NEVER
    return parts[0] if len(parts) == 1 else Or(tuple(parts))


def all_of(*predicates: Predicate) -> Predicate:
    parts = []
    for p in predicates:
        if p is NEVER:
            return NEVER
        if p is ALWAYS:
            continue
        parts.extend(p.parts if isinstance(p, And) else [p])
    if not parts:
        return ALWAYS
    return parts[0] if len(parts) == 1 else And(tuple(parts))


def is_in(field: str, values: Iterable[Any]) -> Predicate:
    """In over a set of values; an empty set matches nothing."""
    values = tuple(sorted(v for v in set(values) if v is not None))
    return In(field, values) if values else NEVER


def lookup(row: Mapping[str, Any], field: str) -> Any:
    """Resolve a dotted field path (``agents.user_id``) against nested row dicts."""
    value: Any = row
    for key in field.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def apply_predicate(query: Any, predicate: Predicate, reference_table: Optional[str] = None) -> Any:
    """Push a predicate down onto a Supabase query builder.

    NEVER has no query form: callers check for it and skip the round trip.
    Leaf predicates become plain column filters. Compound predicates are
    collected into a single ``or`` parameter so two of them never compete for
    the same query key.
    """
    if predicate is ALWAYS:
        return query
    if predicate is NEVER:
        raise ValueError("NEVER cannot be applied to a query; return an empty result instead")

    leaves = predicate.parts if isinstance(predicate, And) else (predicate,)
    compound = []
    for part in leaves:
        if isinstance(part, Eq):
            query = query.is_(part.field, "null") if part.value is None else query.eq(part.field, part.value)
        elif isinstance(part, In):
            query = query.in_(part.field, list(part.values))
        elif isinstance(part, ILike):
            query = query.ilike(part.field, part.pattern)
        elif isinstance(part, Gte):
            query = query.gte(part.field, part.value)
        elif isinstance(part, Lte):
            query = query.lte(part.field, part.value)
        else:
            compound.append(part)

    if not compound:
        return query

    strip = f"{reference_table}." if reference_table else ""
    if len(compound) == 1 and isinstance(compound[0], Or):
        filters = compound[0].render_items(strip)
    else:
        filters = "and(" + ",".join(p.render(strip) for p in compound) + ")"
    if reference_table:
        return query.or_(filters, reference_table=reference_table)
    return query.or_(filters)


FilterBuilder = Callable[[ResourceKind, str, Optional[str]], Awaitable[Predicate]]


class SecureFilterBuilder:
    """Builds the access predicate a (role, user) may list a resource through."""

    def __init__(self, membership: MembershipResolver):
        self.membership = membership
        self._builders: Dict[ResourceKind, Dict[Role, FilterBuilder]] = self._build_builders()

    def _build_builders(self) -> Dict[ResourceKind, Dict[Role, FilterBuilder]]:
        owned = {
            Role.PUBLIC: self._public_owned,
            Role.USER: self._user_owned,
            Role.COMPANY_ADMIN: self._company_admin_owned,
            Role.ADMIN: self._admin_owned,
        }
        builders = {kind: dict(owned) for kind in OWNED_RESOURCES}
        builders[ResourceKind.AGENT_LOG] = {
            Role.PUBLIC: self._never,
            Role.USER: self._user_agent_log,
            Role.COMPANY_ADMIN: self._company_admin_agent_log,
            Role.ADMIN: self._admin_or_never,
        }
        builders[ResourceKind.WAITLIST] = {
            Role.PUBLIC: self._never,
            Role.USER: self._own_waitlist,
            Role.COMPANY_ADMIN: self._own_waitlist,
            Role.ADMIN: self._admin_or_never,
        }
        builders[ResourceKind.COMPANY] = {
            Role.PUBLIC: self._never,
            Role.USER: self._member_companies,
            Role.COMPANY_ADMIN: self._member_companies,
            Role.ADMIN: self._admin_or_never,
        }
        return builders

    async def build_filter(
        self,
        resource: Any,
        role: Any,
        user_id: str,
        company_id: Optional[str] = None,
    ) -> Predicate:
        kind = parse_resource(resource)
        if kind is None or kind not in self._builders:
            raise ConfigurationError(f"No filter builder found for resource: {resource}")
        parsed_role = parse_role(role)
        if parsed_role is None or parsed_role not in self._builders[kind]:
            raise ConfigurationError(f"Unrecognized role for {kind.value} filter: {role}")

        predicate = await self._builders[kind][parsed_role](kind, user_id, company_id)
        scope = company_scope(kind, company_id)
        if scope is not None and parsed_role in (Role.USER, Role.COMPANY_ADMIN):
            predicate = all_of(predicate, scope)
        logger.debug(f"{parsed_role.value} filter for {kind.value}: {predicate!r}")
        return predicate

    async def _never(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        return NEVER

    async def _admin_or_never(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        if await self.membership.has_permission(user_id, f"{kind.value}:read"):
            return ALWAYS
        return NEVER

    async def _public_owned(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        return Eq(OWNERSHIP_SOURCES[kind].public_column, True)

    async def _user_owned(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        source = OWNERSHIP_SOURCES[kind]
        companies = await self.membership.member_companies(user_id)
        return any_of(
            Eq(source.public_column, True),
            Eq(source.owner_column, user_id),
            is_in(source.company_column, companies),
        )

    async def _company_admin_owned(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        source = OWNERSHIP_SOURCES[kind]
        member = await self.membership.member_companies(user_id)
        admin = await self.membership.admin_companies(user_id)
        return any_of(
            Eq(source.public_column, True),
            Eq(source.owner_column, user_id),
            is_in(source.company_column, member | admin),
        )

    async def _admin_owned(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        if await self.membership.has_permission(user_id, f"{kind.value}:read"):
            return ALWAYS
        return Eq(OWNERSHIP_SOURCES[kind].public_column, True)

    async def _user_agent_log(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        return Eq(f"{LOG_AGENT_KEY}.user_id", user_id)

    async def _company_admin_agent_log(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        admin = await self.membership.admin_companies(user_id)
        return any_of(
            Eq(f"{LOG_AGENT_KEY}.user_id", user_id),
            is_in(f"{LOG_AGENT_KEY}.company_id", admin),
        )

    async def _own_waitlist(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        return Eq("user_id", user_id)

    async def _member_companies(self, kind: ResourceKind, user_id: str, company_id: Optional[str]) -> Predicate:
        return is_in("company_id", await self.membership.member_companies(user_id))


def company_scope(kind: ResourceKind, company_id: Optional[str]) -> Optional[Predicate]:
    """Narrowing applied when the caller selected a company with the x-company-id header."""
    if not company_id:
        return None
    if kind == ResourceKind.AGENT_LOG:
        return Eq(f"{LOG_AGENT_KEY}.company_id", company_id)
    source = OWNERSHIP_SOURCES.get(kind)
    if source is None or not source.company_column:
        return None
    return Eq(source.company_column, company_id)


@dataclass(frozen=True)
class SearchWindow:
    limit: int
    offset: int
    sort_by: str
    descending: bool


def normalize_search(
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    allowed_sort_fields: Sequence[str] = ("created_at",),
    default_limit: int = 20,
    max_limit: int = 100,
) -> SearchWindow:
    """Clamp paging to [1, max_limit] and fall back to created_at desc for unknown sort fields."""
    if limit is None or limit < 1:
        limit = default_limit if limit is None else 1
    limit = min(limit, max_limit)
    offset = max(offset or 0, 0)
    if sort_by not in allowed_sort_fields:
        sort_by = "created_at" if "created_at" in allowed_sort_fields else allowed_sort_fields[0]
    descending = (sort_order or "desc").lower() != "asc"
    return SearchWindow(limit=limit, offset=offset, sort_by=sort_by, descending=descending)


def _column(field: str, strip_prefix: str) -> str:
    if strip_prefix and field.startswith(strip_prefix):
        return field[len(strip_prefix):]
    return field


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if _RESERVED.search(text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text
