from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used for permission/membership lookups that must bypass RLS

    # App
    app_name: str = "swarm-api"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    # Auth
    auth_cache_ttl_seconds: int = 60
    auth_cache_max_size: int = 500

    # Access control
    permission_cache_ttl_seconds: int = 900
    company_header: str = "x-company-id"
    admin_role_names: str = "admin,owner,company_admin"
    member_role_name: str = "user"
    company_admin_role_name: str = "company_admin"

    # Audit
    audit_sink: str = "log"  # log | supabase
    audit_table: str = "audit_logs"

    # Search
    search_default_limit: int = 20
    search_max_limit: int = 100

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_admin_role_names(self) -> List[str]:
        return [r.strip() for r in self.admin_role_names.split(",") if r.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
