from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2025-01-01.v1"
    database_url: str = "sqlite+aiosqlite:///./firesafe.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]
    request_id_header: str = "X-Request-ID"

    # ---- Scheduling ----
    # All local dates/times entered by admins are interpreted in this one offset.
    schedule_utc_offset_hours: int = 8

    # ---- Store retry ----
    store_retry_attempts: int = 3
    store_retry_base_seconds: float = 0.05
    store_retry_max_seconds: float = 1.0

    # ---- Collaborators ----
    certificate_base_url: str = "https://storage.local/certifications/inspections"
    notifications_enabled: bool = True

    # ---- Auth ----
    # dev: caller-supplied headers. gateway: identity headers set by the upstream auth proxy.
    auth_mode: str = "dev"  # dev|gateway
    dev_header_user_id: str = "X-User-Id"
    dev_header_user_role: str = "X-User-Role"
    gateway_header_user_id: str = "X-Forwarded-User"
    gateway_header_user_role: str = "X-Forwarded-Role"

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if self.schedule_utc_offset_hours < -12 or self.schedule_utc_offset_hours > 14:
            raise ValueError("schedule_utc_offset_hours must be within -12..14")
        if self.store_retry_attempts < 1:
            raise ValueError("store_retry_attempts must be >= 1")
        if (self.auth_mode or "").strip().lower() not in ("dev", "gateway"):
            raise ValueError("auth_mode must be dev or gateway")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
