from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from spacedrep.application.retention import clamp
from spacedrep.application.utils.dates import get_zone
from spacedrep.domain.constants import (
    DEFAULT_GROWTH_ALPHA,
    DEFAULT_LAPSE_BETA,
    DEFAULT_RETRIEVABILITY_TARGET,
    DEFAULT_SKIP_DEFER_DAYS,
    DEFAULT_STABILITY_ALPHA,
    DEFAULT_STABILITY_DAYS,
    DEFAULT_TIME_ZONE,
    MAX_PROJECTED_REVIEWS,
    REVIEW_TRIGGER_MAX,
    REVIEW_TRIGGER_MIN,
    STABILITY_MAX_DAYS,
    STABILITY_MIN_DAYS,
)
from spacedrep.domain.models import AutoAdjustPreference, ScheduleMode, SchedulingPolicy

CONFIG_FILE = Path.home() / ".config/spacedrep/config.toml"


class AppConfig(BaseSettings):
    """
    Configuration model for spacedrep.
    Supports loading from:
    1. Environment variables (SPACEDREP_*)
    2. Config file (~/.config/spacedrep/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="SPACEDREP_",
        toml_file=CONFIG_FILE,
        extra="ignore",
    )

    # Storage
    snapshot_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/spacedrep/topics.json"
    )
    time_zone: str = DEFAULT_TIME_ZONE

    # Scheduling
    mode: Literal["adaptive", "fixed"] = "adaptive"
    review_trigger: float = DEFAULT_RETRIEVABILITY_TARGET
    growth_alpha: float = DEFAULT_GROWTH_ALPHA
    lapse_beta: float = DEFAULT_LAPSE_BETA
    stability_alpha: float = DEFAULT_STABILITY_ALPHA
    initial_stability: float = DEFAULT_STABILITY_DAYS
    ask_fallback: Literal["always", "never"] = "never"
    skip_defer_days: float = DEFAULT_SKIP_DEFER_DAYS
    max_projected_reviews: int = MAX_PROJECTED_REVIEWS

    # Display
    week_starts_on: Literal[0, 1] = 0
    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Earlier sources win: CLI overrides, then env, then the TOML file.
        if CONFIG_FILE.exists():
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=CONFIG_FILE),
            )
        return (init_settings, env_settings)

    @field_validator("snapshot_path", mode="before")
    @classmethod
    def resolve_snapshot_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        get_zone(v)
        return v

    @field_validator("review_trigger")
    @classmethod
    def clamp_review_trigger(cls, v: float) -> float:
        return clamp(v, REVIEW_TRIGGER_MIN, REVIEW_TRIGGER_MAX)

    @field_validator("initial_stability")
    @classmethod
    def clamp_initial_stability(cls, v: float) -> float:
        return clamp(v, STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)

    @field_validator("skip_defer_days", "max_projected_reviews")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    def to_policy(self) -> SchedulingPolicy:
        return SchedulingPolicy(
            mode=ScheduleMode(self.mode),
            review_trigger=self.review_trigger,
            growth_alpha=self.growth_alpha,
            lapse_beta=self.lapse_beta,
            stability_alpha=self.stability_alpha,
            initial_stability=self.initial_stability,
            ask_fallback=AutoAdjustPreference(self.ask_fallback),
            skip_defer_days=self.skip_defer_days,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/spacedrep/config.toml (if exists)
    3. Environment variables (SPACEDREP_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes every option; unset ones arrive as None.
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
