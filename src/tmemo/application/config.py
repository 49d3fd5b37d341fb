import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from tmemo.application.scheduler import FsrsParameters
from tmemo.domain.constants import (
    DECK_FILENAME,
    DEFAULT_TARGET_RETENTION,
    DIFFICULTY_MAX,
    DIFFICULTY_MIN,
    FSRS_DEFAULT_WEIGHTS,
    FSRS_WEIGHT_COUNT,
    MAXIMUM_INTERVAL_DAYS,
)
from tmemo.domain.exceptions import ConfigurationError


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/tmemo/config.toml",
        Path.home() / ".tmemo.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for tmemo.
    Supports loading from:
    1. Environment variables (TMEMO_*)
    2. Config file (~/.config/tmemo/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="TMEMO_",
        extra="ignore",
    )

    # Paths
    root: Path | None = None
    deck_file: str = DECK_FILENAME

    # Scheduling
    weights: list[float] = Field(default_factory=lambda: list(FSRS_DEFAULT_WEIGHTS))
    target_retention: float = DEFAULT_TARGET_RETENTION
    difficulty_min: float = DIFFICULTY_MIN
    difficulty_max: float = DIFFICULTY_MAX
    maximum_interval: int = MAXIMUM_INTERVAL_DAYS

    # Review sessions
    track_history: bool = True
    new_limit: int | None = None
    smooth_load: bool = True

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

        # Find the first existing file
        toml_file = None
        for f in config_files():
            if f.exists():
                toml_file = f
                break

        # Earlier sources win: CLI overrides, then environment, then the file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("root", mode="before")
    @classmethod
    def resolve_root(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @field_validator("weights")
    @classmethod
    def check_weights(cls, v: list[float]) -> list[float]:
        if len(v) != FSRS_WEIGHT_COUNT:
            raise ValueError(f"expected {FSRS_WEIGHT_COUNT} weights, got {len(v)}")
        return v

    @field_validator("target_retention")
    @classmethod
    def check_retention(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError("target_retention must be between 0 and 1 (exclusive)")
        return v

    @field_validator("new_limit")
    @classmethod
    def check_new_limit(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("new_limit cannot be negative")
        return v

    @model_validator(mode="after")
    def check_difficulty_bounds(self) -> "AppConfig":
        if not 0.0 < self.difficulty_min < self.difficulty_max:
            raise ValueError("difficulty bounds must satisfy 0 < difficulty_min < difficulty_max")
        return self

    @property
    def deck_path(self) -> Path:
        return (self.root or Path.cwd()) / self.deck_file

    def fsrs_parameters(self) -> FsrsParameters:
        return FsrsParameters(
            weights=tuple(self.weights),
            target_retention=self.target_retention,
            difficulty_min=self.difficulty_min,
            difficulty_max=self.difficulty_max,
            maximum_interval=self.maximum_interval,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/tmemo/config.toml (if exists)
    3. Environment variables (TMEMO_*)
    4. cli_overrides (passed from Typer)

    Raises:
        ConfigurationError: A setting from any source is invalid.
    """
    # Typer passes None for options the user did not set.
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    try:
        config = AppConfig(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
    except (SettingsError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if config.root is None:
        config.root = Path.cwd()

    return config
