from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from swarm_api.core.security import Role
from swarm_api.modules.auth.service import AuthService, verified_users


@pytest.fixture(autouse=True)
def empty_user_cache():
    verified_users.clear()
    yield
    verified_users.clear()


def supabase_user(user_id="u1", app_metadata=None):
    user = MagicMock()
    user.id = user_id
    user.email = f"{user_id}@example.com"
    user.user_metadata = {}
    user.app_metadata = app_metadata or {}
    user.created_at = None
    user.updated_at = None
    return MagicMock(user=user)


class TestAuthService:
    def test_verified_user_is_cached_per_token(self):
        supabase = MagicMock()
        supabase.auth.get_user.return_value = supabase_user()
        service = AuthService(supabase)

        first = service.get_current_user("token-a")
        second = service.get_current_user("token-a")

        assert first == second
        assert first["id"] == "u1"
        supabase.auth.get_user.assert_called_once_with(jwt="token-a")

    def test_expired_token(self):
        supabase = MagicMock()
        supabase.auth.get_user.side_effect = Exception("JWT expired")
        with pytest.raises(HTTPException) as exc_info:
            AuthService(supabase).get_current_user("stale")
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid or expired token"

    def test_missing_user(self):
        supabase = MagicMock()
        supabase.auth.get_user.return_value = MagicMock(user=None)
        with pytest.raises(HTTPException) as exc_info:
            AuthService(supabase).get_current_user("token-b")
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("app_metadata,expected", [
        ({}, Role.USER),
        ({"role": "company_admin"}, Role.COMPANY_ADMIN),
        ({"role": "admin"}, Role.ADMIN),
        ({"type": "super_user"}, Role.ADMIN),
        ({"role": "public"}, Role.USER),
        ({"role": "root"}, Role.USER),
    ])
    def test_resolve_role(self, app_metadata, expected):
        assert AuthService.resolve_role({"id": "u1", "app_metadata": app_metadata}) == expected
