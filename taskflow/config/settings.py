"""Environment-bound configuration objects.

All settings classes load from environment variables and the ``.env`` file,
with several accepted names per field where older names exist.

Example:
    from taskflow.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_iterations = settings.agent.max_iterations
    primary = settings.orchestrator.primary_backend
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


load_dotenv()

AgentMode = Literal["autonomous", "supervised"]
CyclePolicy = Literal["fallback", "reject"]
SelectionStrategy = Literal["performance", "cost", "load_balanced"]

_ENV_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


def _split_csv(value):
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class AgentSettings(BaseSettings):
    """Lifecycle and execution policy.

    - mode: ``supervised`` pauses for approval before gated actions run
    - max_iterations: planning passes allowed per run (>= 1)
    - continue_on_error: keep executing independent tasks after a failure
    - task_timeout_ms: timeout applied to every task dispatch
    - approval_required: task kinds or tool names that need approval
    """

    mode: AgentMode = Field(
        default="autonomous",
        validation_alias=AliasChoices("TASKFLOW_MODE", "AGENT_MODE"),
    )
    max_iterations: int = Field(
        default=3,
        ge=1,
        le=50,
        validation_alias=AliasChoices("MAX_ITERATIONS", "TASKFLOW_MAX_ITERATIONS"),
    )
    continue_on_error: bool = Field(
        default=False,
        validation_alias=AliasChoices("CONTINUE_ON_ERROR", "TASKFLOW_CONTINUE_ON_ERROR"),
    )
    task_timeout_ms: int = Field(
        default=300_000,
        ge=1,
        validation_alias=AliasChoices("TASK_TIMEOUT_MS", "TASKFLOW_TIMEOUT"),
    )
    approval_required: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["shell"],
        validation_alias=AliasChoices("APPROVAL_REQUIRED", "TASKFLOW_APPROVAL_REQUIRED"),
    )
    cycle_policy: CyclePolicy = Field(
        default="fallback",
        validation_alias=AliasChoices("CYCLE_POLICY"),
    )
    test_command: str = Field(
        default="pytest -q",
        validation_alias=AliasChoices("TEST_COMMAND"),
    )
    project_path: str = Field(
        default=".",
        validation_alias=AliasChoices("PROJECT_PATH", "TASKFLOW_PROJECT_PATH"),
    )
    use_default_plan_on_error: bool = Field(
        default=True,
        validation_alias=AliasChoices("USE_DEFAULT_PLAN_ON_ERROR"),
    )

    model_config = _ENV_CONFIG

    @field_validator("approval_required", mode="before")
    @classmethod
    def _parse_approval_list(cls, value):
        return _split_csv(value)


class OrchestratorSettings(BaseSettings):
    """Backend selection and fallback.

    When ``backends_file`` is missing, a single backend named after
    ``primary_backend`` is built from MODEL_ID / MODEL_API_KEY / MODEL_BASE_URL.
    """

    multi_model_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("MULTI_MODEL_ENABLED"),
    )
    primary_backend: str = Field(
        default="default",
        validation_alias=AliasChoices("PRIMARY_BACKEND", "MODEL_PRIMARY"),
    )
    fallback_backends: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        validation_alias=AliasChoices("FALLBACK_BACKENDS", "MODEL_FALLBACK"),
    )
    strategy: SelectionStrategy = Field(
        default="performance",
        validation_alias=AliasChoices("SELECTION_STRATEGY"),
    )
    request_timeout_s: float = Field(
        default=120.0,
        gt=0,
        validation_alias=AliasChoices("MODEL_REQUEST_TIMEOUT"),
    )
    backends_file: Optional[str] = Field(
        default="backends.yaml",
        validation_alias=AliasChoices("BACKENDS_FILE"),
    )

    model_id: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("MODEL_ID", "MODEL_BASE", "OPENAI_MODEL"),
    )
    model_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_API_KEY", "OPENAI_API_KEY"),
    )
    model_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_URL", "OPENAI_BASE_URL"),
    )

    model_config = _ENV_CONFIG

    @field_validator("fallback_backends", mode="before")
    @classmethod
    def _parse_fallbacks(cls, value):
        return _split_csv(value)


class VerificationSettings(BaseSettings):
    quality_threshold: int = Field(default=80, ge=0, le=100, validation_alias=AliasChoices("QUALITY_THRESHOLD"))
    coverage_pass: float = Field(default=70.0, ge=0, le=100, validation_alias=AliasChoices("COVERAGE_PASS"))
    coverage_warn: float = Field(default=50.0, ge=0, le=100, validation_alias=AliasChoices("COVERAGE_WARN"))
    require_coverage_report: bool = Field(
        default=True,
        validation_alias=AliasChoices("REQUIRE_COVERAGE_REPORT"),
    )
    check_timeout_s: float = Field(default=60.0, gt=0, validation_alias=AliasChoices("CHECK_TIMEOUT"))

    model_config = _ENV_CONFIG


class ObservabilitySettings(BaseSettings):
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_dir: Optional[str] = Field(default="logs", validation_alias=AliasChoices("LOG_DIR"))
    log_prompt_max_length: int = Field(
        default=2000,
        ge=100,
        validation_alias=AliasChoices("LOG_PROMPT_MAX_LENGTH"),
    )

    model_config = _ENV_CONFIG


class Settings(BaseSettings):
    """Root settings holding the four configuration groups.

    Use get_settings() to obtain a cached singleton instance.
    """

    environment: str = Field(default="dev", validation_alias=AliasChoices("APP_ENV", "TASKFLOW_ENV"))

    agent: AgentSettings = Field(default_factory=AgentSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = _ENV_CONFIG


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance (singleton)."""
    return Settings()


__all__ = [
    "AgentMode",
    "AgentSettings",
    "CyclePolicy",
    "ObservabilitySettings",
    "OrchestratorSettings",
    "SelectionStrategy",
    "Settings",
    "VerificationSettings",
    "get_settings",
]
