"""Excel Agent — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. User config:   ~/.excel-agent/config.yaml
    3. An explicit config file passed to ``Settings.load()``
    4. Environment variables prefixed with EXCEL_AGENT_

Provider credentials are not part of the settings: adapters read
them from the process environment at construction time, under the variable
names configured in ``ProviderConfig``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.7
    openai_max_tokens: Annotated[int, Field(ge=1)] = 16384
    anthropic_max_tokens: Annotated[int, Field(ge=1)] = 4096
    google_max_tokens: int | None = Field(
        default=None,
        description="Output token cap for Gemini. None lets the model finish its response.",
    )
    openai_env_key: str = "OPENAI_API_KEY"
    anthropic_env_key: str = "ANTHROPIC_API_KEY"
    google_env_key: str = "GOOGLE_API_KEY"


class ModelCatalogConfig(BaseModel):
    catalog_path: Path | None = Field(
        default=None,
        description="YAML model catalog. None uses the catalog shipped with the package.",
    )
    overrides_env: str = Field(
        default="MODEL_OVERRIDES",
        description="Environment variable holding a JSON array of model overrides.",
    )


class LedgerConfig(BaseModel):
    db_path: Path = Path("~/.excel-agent/ledger.db")


class OrchestratorConfig(BaseModel):
    cost_per_1k_tokens: Annotated[float, Field(ge=0.0)] = Field(
        default=0.045,
        description="Blended USD price per 1K tokens used for cost estimates.",
    )
    max_continuations: Annotated[int, Field(ge=1, le=100)] = Field(
        default=8,
        description="Upper bound on tool-result round trips within one user turn.",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EXCEL_AGENT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    models: ModelCatalogConfig = Field(default_factory=ModelCatalogConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats values read from config files by load().
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("ledger", mode="before")
    @classmethod
    def expand_ledger_path(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("db_path"), str):
            v["db_path"] = Path(v["db_path"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [Path.home() / ".excel-agent" / "config.yaml"]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton, replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
