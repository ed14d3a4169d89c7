"""agentjobs configuration schema: YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class DatabaseConfig(BaseModel):
    path: str = "data/agentjobs.db"
    busy_timeout_s: float = 5.0


class WorkspaceConfig(BaseModel):
    """Tenant every store instance is scoped to."""

    tenant_id: str = "default"


class WorkerConfig(BaseModel):
    """Polling worker (worker.*)."""

    enabled: bool = True
    poll_interval_s: float = 10.0
    max_per_poll: int = Field(default=50, gt=0)
    run_timeout_s: int = Field(default=300, gt=0)  # stale-run threshold
    max_run_history: int = Field(default=100, gt=0)
    retry_delay_s: int = Field(default=60, gt=0)


class ApiConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings, env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        AGENTJOBS_DATABASE__PATH=data/prod.db
        AGENTJOBS_WORKSPACE__TENANT_ID=acme
        AGENTJOBS_WORKER__RUN_TIMEOUT_S=600
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTJOBS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        # YAML arrives as init kwargs; env must win over it
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)

    @property
    def tenant_id(self) -> str:
        return self.workspace.tenant_id
