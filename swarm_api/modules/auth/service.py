import hashlib
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException
from supabase import Client

from swarm_api.config import settings
from swarm_api.core.security import Role

logger = logging.getLogger(__name__)

_SYSTEM_ROLES = {Role.USER.value, Role.COMPANY_ADMIN.value, Role.ADMIN.value}


class VerifiedUserCache:
    """Verified users keyed by token hash, so bursts of requests with one token hit Supabase Auth once."""

    def __init__(self, ttl_seconds: float, max_size: int):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._lock = threading.Lock()
        self._users: Dict[str, Tuple[Dict[str, Any], float]] = {}

    @staticmethod
    def key(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = self.key(token)
        with self._lock:
            cached = self._users.get(key)
            if cached is None:
                return None
            user_data, expires_at = cached
            if time.monotonic() >= expires_at:
                del self._users[key]
                return None
            return user_data

    def put(self, token: str, user_data: Dict[str, Any]) -> None:
        with self._lock:
            # Full cache: skip storing rather than evict
            if len(self._users) < self.max_size:
                self._users[self.key(token)] = (user_data, time.monotonic() + self.ttl_seconds)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()


verified_users = VerifiedUserCache(settings.auth_cache_ttl_seconds, settings.auth_cache_max_size)


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Verify a bearer token with Supabase Auth and return the user record"""
        user_data = verified_users.get(token)
        if user_data is not None:
            return user_data
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.info(f"Token verification failed: {e}")
            message = str(e).lower()
            if "jwt" in message or "expired" in message or "invalid" in message:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user_data = _user_record(user_response.user)
        verified_users.put(token, user_data)
        return user_data

    @staticmethod
    def resolve_role(user_data: Dict[str, Any]) -> Role:
        """System role from app_metadata, which users cannot edit themselves. Defaults to user."""
        app_metadata = user_data.get("app_metadata") or {}
        if app_metadata.get("type") == "super_user":
            return Role.ADMIN
        role = app_metadata.get("role")
        if role in _SYSTEM_ROLES:
            return Role(role)
        return Role.USER


def _user_record(user: Any) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "user_metadata": user.user_metadata or {},
        "app_metadata": user.app_metadata or {},
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }
