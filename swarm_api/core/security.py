"""Security context, roles and decision results shared by the access-control core."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

ANONYMOUS_USER_ID = "anonymous"


class Role(str, Enum):
    PUBLIC = "public"
    USER = "user"
    COMPANY_ADMIN = "company_admin"
    ADMIN = "admin"


class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class ResourceKind(str, Enum):
    AGENT = "agent"
    AGENT_LOG = "agent_log"
    COMPANY = "company"
    ORGANIZATION = "organization"
    TEAM = "team"
    TOOL = "tool"
    LLMSTXT = "llmstxt"
    WAITLIST = "waitlist"


@dataclass
class SecurityContext:
    """One access question: may user_id acting as user_role perform operation on resource?

    resource and user_role are kept as given so that unknown values reach the
    dispatcher and fail closed there instead of at construction time.
    """
    user_id: str
    user_role: Union[Role, str]
    operation: Union[Operation, str]
    resource: Union[ResourceKind, str]
    resource_id: Optional[str] = None
    company_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    require_company: bool = False

    @property
    def permission_name(self) -> str:
        return f"{_value(self.resource)}:{_value(self.operation)}"

    def describe(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_role": _value(self.user_role),
            "operation": _value(self.operation),
            "resource": _value(self.resource),
            "resource_id": self.resource_id,
            "company_id": self.company_id,
        }


@dataclass(frozen=True)
class OwnershipFact:
    id: str
    owner_user_id: Optional[str] = None
    company_id: Optional[str] = None
    is_public: bool = False


@dataclass(frozen=True)
class Allowed:
    allowed: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Denied:
    reason: str
    allowed: bool = field(default=False, init=False)


Decision = Union[Allowed, Denied]

ALLOWED = Allowed()


@dataclass
class Principal:
    """The authenticated (or anonymous) caller as resolved from the bearer token."""
    user_id: str
    role: Role
    email: Optional[str] = None
    company_id: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == ANONYMOUS_USER_ID


def _value(item: Any) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def parse_role(value: Union[Role, str]) -> Optional[Role]:
    try:
        return Role(_value(value))
    except ValueError:
        return None


def parse_operation(value: Union[Operation, str]) -> Optional[Operation]:
    try:
        return Operation(_value(value))
    except ValueError:
        return None


def parse_resource(value: Union[ResourceKind, str]) -> Optional[ResourceKind]:
    try:
        return ResourceKind(_value(value))
    except ValueError:
        return None
