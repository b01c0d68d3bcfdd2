"""Role management: who may assign roles where, last-admin protection and permission-set replacement."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from swarm_api.config.permissions_config import COMPANY_ROLES, PERMISSION_MATRIX, SYSTEM_ADMIN_ROLE
from swarm_api.core.audit import MemoryAuditSink
from swarm_api.core.exceptions import AccessDeniedError, LastAdminError
from swarm_api.core.execution import ExecutionContext
from swarm_api.core.security import Principal, Role
from swarm_api.modules.rbac.schemas import RoleAssign, RolePermissionsUpdate
from swarm_api.modules.rbac.service import RbacService

EXECUTE = "swarm_api.modules.rbac.service.execute"


def result(data=None):
    return MagicMock(data=data if data is not None else [])


def role_row(role_id, role_name, *permissions):
    return {
        "role_id": role_id,
        "role_name": role_name,
        "description": None,
        "created_at": None,
        "role_function_permissions": [
            {"function_permissions": {"permission_id": f"p-{name}", "function_name": name, "description": None}}
            for name in permissions
        ],
    }


MEMBER_ROLE = role_row("r-user", "user", "company:read")
SYSTEM_ROLE = role_row("r-root", SYSTEM_ADMIN_ROLE, "agent:delete")


@pytest.fixture
def membership():
    membership = MagicMock()
    membership.is_admin = AsyncMock(return_value=True)
    membership.count_admins = AsyncMock(return_value=1)
    return membership


@pytest.fixture
def sink():
    return MemoryAuditSink()


@pytest.fixture
def service(membership, sink):
    return RbacService(MagicMock(), membership, ExecutionContext(sink))


@pytest.fixture
def root():
    return Principal(user_id="root", role=Role.ADMIN)


@pytest.fixture
def company_admin():
    return Principal(user_id="mallory", role=Role.COMPANY_ADMIN)


class TestRoleCatalogue:
    def test_company_admins_do_not_manage_roles(self):
        assert "company:manage_roles" not in COMPANY_ROLES["company_admin"]["permissions"]
        roles = {role["name"]: role for role in PERMISSION_MATRIX["roles"]}
        assert "company:manage_roles" in roles[SYSTEM_ADMIN_ROLE]["permissions"]


class TestAssignRole:
    @pytest.mark.asyncio
    async def test_assign_into_foreign_company_is_denied(self, service, membership, company_admin, sink):
        membership.is_admin.return_value = False
        execute = AsyncMock()
        with patch(EXECUTE, execute):
            with pytest.raises(AccessDeniedError):
                await service.assign_role(company_admin, RoleAssign(user_id="mallory", company_id="victim_co", role_id="r-admin"))

        membership.is_admin.assert_awaited_once_with("mallory", "victim_co")
        execute.assert_not_awaited()
        membership.invalidate_permissions.assert_not_called()
        assert sink.events[-1].phase == "failure"

    @pytest.mark.asyncio
    async def test_system_admin_role_is_not_assignable_by_company_admins(self, service, membership, company_admin):
        execute = AsyncMock(side_effect=[result([SYSTEM_ROLE])])
        with patch(EXECUTE, execute):
            with pytest.raises(AccessDeniedError):
                await service.assign_role(company_admin, RoleAssign(user_id="mallory", company_id="own_co", role_id="r-root"))
        assert execute.await_count == 1
        membership.invalidate_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_last_admin_cannot_be_reassigned(self, service, membership, root):
        execute = AsyncMock(side_effect=[
            result([MEMBER_ROLE]),
            result([{"role_id": "r-admin", "roles": {"role_name": "company_admin"}}]),
        ])
        with patch(EXECUTE, execute):
            with pytest.raises(LastAdminError):
                await service.assign_role(root, RoleAssign(user_id="A", company_id="c1", role_id="r-user"))

        assert execute.await_count == 2
        membership.count_admins.assert_awaited_once_with("c1")
        membership.is_admin.assert_not_awaited()
        membership.invalidate_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_reassign_with_another_admin(self, service, membership, root):
        membership.count_admins.return_value = 2
        execute = AsyncMock(side_effect=[
            result([MEMBER_ROLE]),
            result([{"role_id": "r-admin", "roles": {"role_name": "company_admin"}}]),
            result([{}]),
        ])
        with patch(EXECUTE, execute):
            response = await service.assign_role(root, RoleAssign(user_id="A", company_id="c1", role_id="r-user"))

        assert response.created is False
        assert response.role.role_name == "user"
        membership.invalidate_permissions.assert_called_once_with("A")

    @pytest.mark.asyncio
    async def test_new_membership_is_created(self, service, membership, company_admin, sink):
        execute = AsyncMock(side_effect=[result([MEMBER_ROLE]), result([]), result([{}])])
        with patch(EXECUTE, execute):
            response = await service.assign_role(company_admin, RoleAssign(user_id="B", company_id="own_co", role_id="r-user"))

        assert response.created is True
        assert (response.user_id, response.company_id) == ("B", "own_co")
        service.supabase.table.return_value.insert.assert_called_once_with(
            {"user_id": "B", "company_id": "own_co", "role_id": "r-user"}
        )
        membership.count_admins.assert_not_awaited()
        membership.invalidate_permissions.assert_called_once_with("B")
        assert [e.phase for e in sink.events] == ["start", "success"]
        assert sink.events[0].metadata["target_company_id"] == "own_co"


class TestUpdateRolePermissions:
    @pytest.mark.asyncio
    async def test_unknown_permission_ids(self, service, membership, root):
        execute = AsyncMock(side_effect=[result([MEMBER_ROLE]), result([{"permission_id": "p1"}])])
        with patch(EXECUTE, execute):
            with pytest.raises(HTTPException) as exc_info:
                await service.update_role_permissions(root, RolePermissionsUpdate(role_id="r-user", permission_ids=["p1", "p2"]))

        assert exc_info.value.status_code == 404
        assert execute.await_count == 2
        service.supabase.table.return_value.delete.assert_not_called()
        membership.invalidate_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_replacement_invalidates_every_cached_answer(self, service, membership, root):
        updated = role_row("r-user", "user", "company:read", "agent:read")
        execute = AsyncMock(side_effect=[
            result([MEMBER_ROLE]),
            result([{"permission_id": "p1"}, {"permission_id": "p2"}]),
            result([]),
            result([{}, {}]),
            result([updated]),
        ])
        with patch(EXECUTE, execute):
            response = await service.update_role_permissions(
                root, RolePermissionsUpdate(role_id="r-user", permission_ids=["p1", "p2", "p1"])
            )

        assert [p.function_name for p in response.permissions] == ["agent:read", "company:read"]
        service.supabase.table.return_value.insert.assert_called_once_with([
            {"role_id": "r-user", "permission_id": "p1"},
            {"role_id": "r-user", "permission_id": "p2"},
        ])
        membership.invalidate_permissions.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_system_admin_role_is_off_limits_to_company_admins(self, service, membership, company_admin):
        execute = AsyncMock(side_effect=[result([SYSTEM_ROLE])])
        with patch(EXECUTE, execute):
            with pytest.raises(AccessDeniedError):
                await service.update_role_permissions(company_admin, RolePermissionsUpdate(role_id="r-root", permission_ids=[]))
        assert execute.await_count == 1
        membership.invalidate_permissions.assert_not_called()
