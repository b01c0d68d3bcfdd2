"""Company membership management: last-admin protection and mutation ordering."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from swarm_api.core.audit import MemoryAuditSink
from swarm_api.core.exceptions import AccessDeniedError, LastAdminError, UpstreamUnavailableError
from swarm_api.core.execution import ExecutionContext
from swarm_api.core.security import Principal, Role
from swarm_api.modules.companies.schemas import BulkRoleUpdateItem, CompanyCreate, CompanyMemberAdd
from swarm_api.modules.companies.service import CompanyService

EXECUTE = "swarm_api.modules.companies.service.execute"

ADMIN_ROLE = {"role_id": "r-admin", "role_name": "company_admin"}
MEMBER_ROLE = {"role_id": "r-user", "role_name": "user"}


def result(data=None, count=None):
    return MagicMock(data=data if data is not None else [], count=count)


def member_row(user_id, role, company_id="c1"):
    return {
        "user_id": user_id,
        "company_id": company_id,
        "role_id": role["role_id"],
        "created_at": "2024-05-01T10:00:00+00:00",
        "roles": {"role_name": role["role_name"]},
    }


@pytest.fixture
def membership():
    membership = MagicMock()
    membership.count_admins = AsyncMock(return_value=1)
    return membership


@pytest.fixture
def validator(membership):
    validator = MagicMock()
    validator.validate = AsyncMock(return_value=None)
    validator.membership = membership
    return validator


@pytest.fixture
def sink():
    return MemoryAuditSink()


@pytest.fixture
def service(validator, sink):
    return CompanyService(MagicMock(), validator, MagicMock(), ExecutionContext(sink))


@pytest.fixture
def admin():
    return Principal(user_id="A", role=Role.COMPANY_ADMIN, company_id="c1")


class TestLastAdminProtection:
    @pytest.mark.asyncio
    async def test_demote_sole_admin_is_rejected_before_mutation(self, service, membership, admin):
        execute = AsyncMock(side_effect=[
            result([member_row("A", ADMIN_ROLE)]),
            result([MEMBER_ROLE]),
        ])
        with patch(EXECUTE, execute):
            with pytest.raises(LastAdminError):
                await service.demote_member(admin, "c1", "A")

        assert execute.await_count == 2
        membership.count_admins.assert_awaited_once_with("c1")
        membership.invalidate_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_demote_with_another_admin(self, service, validator, membership, admin, sink):
        membership.count_admins.return_value = 2
        execute = AsyncMock(side_effect=[
            result([member_row("B", ADMIN_ROLE)]),
            result([MEMBER_ROLE]),
            result([member_row("B", MEMBER_ROLE)]),
            result([member_row("B", MEMBER_ROLE)]),
        ])
        with patch(EXECUTE, execute):
            response = await service.demote_member(admin, "c1", "B")

        assert response.message == "Role updated successfully"
        assert (response.old_role, response.new_role) == ("company_admin", "user")
        assert response.member.role_name == "user"
        membership.invalidate_permissions.assert_called_once_with("B")
        # One authorization and one membership read for the whole demotion
        validator.validate.assert_awaited_once()
        assert execute.await_count == 4
        assert [(e.operation, e.phase) for e in sink.events] == [("demote_member", "start"), ("demote_member", "success")]

    @pytest.mark.asyncio
    async def test_demote_non_admin_is_bad_request(self, service, admin, sink):
        execute = AsyncMock(side_effect=[result([member_row("B", MEMBER_ROLE)])])
        with patch(EXECUTE, execute):
            with pytest.raises(HTTPException) as exc_info:
                await service.demote_member(admin, "c1", "B")
        assert exc_info.value.status_code == 400
        assert execute.await_count == 1
        assert sink.events[-1].phase == "failure"

    @pytest.mark.asyncio
    async def test_remove_sole_admin(self, service, membership):
        root = Principal(user_id="root", role=Role.ADMIN)
        execute = AsyncMock(side_effect=[result([member_row("A", ADMIN_ROLE)])])
        with patch(EXECUTE, execute):
            with pytest.raises(LastAdminError):
                await service.remove_member(root, "c1", "A")
        assert execute.await_count == 1

    @pytest.mark.asyncio
    async def test_sole_admin_cannot_leave(self, service, admin, sink):
        execute = AsyncMock(side_effect=[result([member_row("A", ADMIN_ROLE)])])
        with patch(EXECUTE, execute):
            with pytest.raises(LastAdminError):
                await service.remove_member(admin, "c1", "A")
        assert sink.events[-1].phase == "failure"
        assert sink.events[-1].operation == "leave_company"

    @pytest.mark.asyncio
    async def test_remove_plain_member(self, service, membership, admin):
        execute = AsyncMock(side_effect=[result([member_row("B", MEMBER_ROLE)]), result([{"user_id": "B"}])])
        with patch(EXECUTE, execute):
            assert await service.remove_member(admin, "c1", "B") is True
        membership.count_admins.assert_not_awaited()
        membership.invalidate_permissions.assert_called_once_with("B")

    @pytest.mark.asyncio
    async def test_bulk_update_that_removes_every_admin(self, service, membership, admin):
        execute = AsyncMock(side_effect=[
            result([member_row("A", ADMIN_ROLE), member_row("B", MEMBER_ROLE)]),
            result([MEMBER_ROLE]),
        ])
        with patch(EXECUTE, execute):
            with pytest.raises(LastAdminError):
                await service.bulk_update_roles(admin, "c1", [BulkRoleUpdateItem(user_id="A", role_name="user")])
        assert execute.await_count == 2
        membership.invalidate_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_bulk_handover(self, service, membership, admin):
        execute = AsyncMock(side_effect=[
            result([member_row("A", ADMIN_ROLE), member_row("B", MEMBER_ROLE), member_row("C", MEMBER_ROLE)]),
            result([MEMBER_ROLE]),
            result([ADMIN_ROLE]),
            result([{}]),
            result([{}]),
        ])
        updates = [
            BulkRoleUpdateItem(user_id="A", role_name="user"),
            BulkRoleUpdateItem(user_id="B", role_name="company_admin"),
            BulkRoleUpdateItem(user_id="C", role_name="user"),
        ]
        with patch(EXECUTE, execute):
            response = await service.bulk_update_roles(admin, "c1", updates)

        assert [m.user_id for m in response.updated] == ["A", "B"]
        assert response.unchanged == ["C"]
        assert membership.invalidate_permissions.call_count == 2


class TestMembers:
    @pytest.mark.asyncio
    async def test_unchanged_role(self, service, membership, admin):
        execute = AsyncMock(side_effect=[result([member_row("B", MEMBER_ROLE)]), result([MEMBER_ROLE])])
        with patch(EXECUTE, execute):
            response = await service.update_member_role(admin, "c1", "B", "user")
        assert response.message == "Role unchanged"
        membership.count_admins.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_add_existing_member_conflicts(self, service, admin):
        execute = AsyncMock(side_effect=[result([member_row("B", MEMBER_ROLE)])])
        with patch(EXECUTE, execute):
            with pytest.raises(HTTPException) as exc_info:
                await service.add_member(admin, "c1", CompanyMemberAdd(user_id="B"))
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_denied_caller_never_reaches_the_store(self, service, validator, admin, sink):
        validator.validate.side_effect = AccessDeniedError("nope")
        execute = AsyncMock()
        with patch(EXECUTE, execute):
            with pytest.raises(AccessDeniedError):
                await service.update_member_role(admin, "c1", "B", "company_admin")
        execute.assert_not_awaited()
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_company_admin_cannot_hand_out_system_admin(self, service, membership, admin):
        execute = AsyncMock(side_effect=[
            result([member_row("A", ADMIN_ROLE)]),
            result([{"role_id": "r-root", "role_name": "admin"}]),
        ])
        with patch(EXECUTE, execute):
            with pytest.raises(AccessDeniedError):
                await service.update_member_role(admin, "c1", "A", "admin")
        assert execute.await_count == 2
        membership.invalidate_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_company_admin_cannot_add_system_admin(self, service, admin):
        execute = AsyncMock(side_effect=[result([]), result([{"role_id": "r-root", "role_name": "admin"}])])
        with patch(EXECUTE, execute):
            with pytest.raises(AccessDeniedError):
                await service.add_member(admin, "c1", CompanyMemberAdd(user_id="B", role_name="admin"))
        assert execute.await_count == 2

    @pytest.mark.asyncio
    async def test_other_users_roles_need_system_admin(self, service):
        member = Principal(user_id="u1", role=Role.COMPANY_ADMIN)
        with pytest.raises(AccessDeniedError):
            await service.get_user_roles(member, "u2")


class TestCompanies:
    @pytest.mark.asyncio
    async def test_creator_becomes_company_admin(self, service, membership):
        user = Principal(user_id="u1", role=Role.USER)
        company = {"company_id": "c9", "name": "Acme"}
        execute = AsyncMock(side_effect=[result([]), result([ADMIN_ROLE]), result([company]), result([{}])])
        with patch(EXECUTE, execute):
            response = await service.create_company(user, CompanyCreate(name="  Acme "))

        assert response.company_id == "c9"
        inserts = [c.args[0] for c in service.supabase.table.return_value.insert.call_args_list]
        assert inserts[0]["name"] == "Acme"
        assert inserts[1] == {"user_id": "u1", "company_id": "c9", "role_id": "r-admin"}
        membership.invalidate_permissions.assert_called_once_with("u1")

    @pytest.mark.asyncio
    async def test_delete_blocked_by_dependencies(self, service):
        root = Principal(user_id="root", role=Role.ADMIN)
        execute = AsyncMock(side_effect=[
            result([{"company_id": "c1"}], count=2),
            result([], count=0),
            result([], count=0),
            result([{"company_id": "c1"}], count=1),
        ])
        with patch(EXECUTE, execute):
            with pytest.raises(HTTPException) as exc_info:
                await service.delete_company(root, "c1")
        assert exc_info.value.status_code == 409
        assert "2 agents" in exc_info.value.detail
        assert "1 tools" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_company_row_is_removed_when_creator_membership_fails(self, service, membership, sink):
        user = Principal(user_id="u1", role=Role.USER)
        company = {"company_id": "c9", "name": "Acme"}
        outage = UpstreamUnavailableError("creator membership insert failed")
        execute = AsyncMock(side_effect=[result([]), result([ADMIN_ROLE]), result([company]), outage, result([company])])
        with patch(EXECUTE, execute):
            with pytest.raises(UpstreamUnavailableError) as exc_info:
                await service.create_company(user, CompanyCreate(name="Acme"))

        assert exc_info.value is outage
        assert execute.await_count == 5
        table = service.supabase.table
        assert table.call_args_list[-1].args == ("companies",)
        table.return_value.delete.return_value.eq.assert_called_with("company_id", "c9")
        membership.invalidate_permissions.assert_not_called()
        assert sink.events[-1].phase == "failure"

    @pytest.mark.asyncio
    async def test_delete_removes_company_before_memberships(self, service, membership):
        root = Principal(user_id="root", role=Role.ADMIN)
        execute = AsyncMock(side_effect=[
            result([], count=0),
            result([], count=0),
            result([], count=0),
            result([], count=0),
            result([{"company_id": "c1"}]),
            result([]),
        ])
        with patch(EXECUTE, execute):
            assert await service.delete_company(root, "c1") is True

        labels = [c.args[1] for c in execute.await_args_list[-2:]]
        assert labels == ["company delete", "company memberships delete"]
        membership.invalidate_permissions.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_delete_of_missing_company_keeps_memberships(self, service, membership):
        root = Principal(user_id="root", role=Role.ADMIN)
        execute = AsyncMock(side_effect=[
            result([], count=0),
            result([], count=0),
            result([], count=0),
            result([], count=0),
            result([]),
        ])
        with patch(EXECUTE, execute):
            with pytest.raises(HTTPException) as exc_info:
                await service.delete_company(root, "c1")

        assert exc_info.value.status_code == 404
        assert execute.await_count == 5
        assert "company memberships delete" not in [c.args[1] for c in execute.await_args_list]
        membership.invalidate_permissions.assert_not_called()
