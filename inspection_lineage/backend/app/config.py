from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./inspections.db"
    log_level: str = "INFO"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Lineage resolution ----
    # Store caps a single task read at this many rows.
    task_page_size: int = 1000
    # Longest parent chain the walker will follow before giving up.
    max_chain_depth: int = 25
    # leaf_wins | root_wins
    dedup_policy: str = "leaf_wins"

    # ---- Identity ----
    auth_mode: str = "dev"  # dev|gateway

    # Dev header names
    dev_header_user_id: str = "X-User-Id"
    dev_header_user_email: str = "X-User-Email"
    # Header an upstream auth gateway sets once it has verified the caller
    gateway_header_user_id: str = "X-Authenticated-User-Id"

    def model_post_init(self, __context) -> None:
        policy = (self.dedup_policy or "").strip().lower()
        if policy not in ("leaf_wins", "root_wins"):
            raise ValueError(f"dedup_policy must be leaf_wins or root_wins, got {self.dedup_policy!r}")
        object.__setattr__(self, "dedup_policy", policy)

        if int(self.task_page_size) <= 0:
            raise ValueError("task_page_size must be positive")
        if int(self.max_chain_depth) <= 0:
            raise ValueError("max_chain_depth must be positive")

        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        # Hard fail: prod must not trust caller-supplied identity headers
        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
