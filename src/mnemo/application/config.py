from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mnemo.application.scheduler import SchedulerSettings
from mnemo.domain.constants import (
    BALANCE_WINDOW_FRACTION,
    DEFAULT_BASE_EASE,
    DEFAULT_EASE_STEP,
    DEFAULT_EASY_BONUS,
    DEFAULT_HARD_INTERVAL_FACTOR,
    DEFAULT_HISTORY_FILE,
    DEFAULT_MAX_LINK_FACTOR,
    DEFAULT_MIN_EASE,
    PAGERANK_DAMPING,
    PAGERANK_EPSILON,
    PAGERANK_MAX_ITERATIONS,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/mnemo/config.toml",
        Path.home() / ".mnemo.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for mnemo.
    Supports loading from:
    1. Environment variables (MNEMO_*)
    2. Config file (~/.config/mnemo/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEMO_",
        extra="ignore",
    )

    # Paths
    vault_root: Path | None = None
    history_file: Path = Path(DEFAULT_HISTORY_FILE)

    # Scheduler
    base_ease: int = Field(default=DEFAULT_BASE_EASE, ge=1)
    easy_bonus: float = Field(default=DEFAULT_EASY_BONUS, ge=1.0)
    hard_interval_factor: float = Field(default=DEFAULT_HARD_INTERVAL_FACTOR, gt=0.0, le=1.0)
    min_ease: int = Field(default=DEFAULT_MIN_EASE, ge=1)
    ease_step: int = Field(default=DEFAULT_EASE_STEP, ge=0)
    max_link_factor: float = Field(default=DEFAULT_MAX_LINK_FACTOR, ge=0.0, le=1.0)
    load_balance: bool = True
    balance_window_fraction: float = Field(default=BALANCE_WINDOW_FRACTION, ge=0.0)

    # PageRank
    pagerank_damping: float = Field(default=PAGERANK_DAMPING, gt=0.0, lt=1.0)
    pagerank_epsilon: float = Field(default=PAGERANK_EPSILON, gt=0.0)
    pagerank_max_iterations: int = Field(default=PAGERANK_MAX_ITERATIONS, ge=1)

    verbose: int = 0

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

        # First existing file wins; CLI overrides beat env, env beats the file.
        toml_file = next((f for f in config_files() if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("vault_root", mode="before")
    @classmethod
    def resolve_vault_root(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @field_validator("history_file", mode="before")
    @classmethod
    def expand_history_file(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @model_validator(mode="after")
    def check_ease_floor(self) -> "AppConfig":
        if self.base_ease < self.min_ease:
            raise ValueError(f"base_ease ({self.base_ease}) must be >= min_ease ({self.min_ease})")
        return self

    def scheduler_settings(self) -> SchedulerSettings:
        return SchedulerSettings(
            base_ease=self.base_ease,
            easy_bonus=self.easy_bonus,
            hard_interval_factor=self.hard_interval_factor,
            min_ease=self.min_ease,
            ease_step=self.ease_step,
            max_link_factor=self.max_link_factor,
            load_balance=self.load_balance,
            balance_window_fraction=self.balance_window_fraction,
        )

    @property
    def vault_path(self) -> Path:
        """Vault root, falling back to the CWD when none is configured."""
        return self.vault_root if self.vault_root is not None else Path.cwd()

    @property
    def history_path(self) -> Path:
        """History file, resolved against the vault when relative."""
        if self.history_file.is_absolute():
            return self.history_file
        return self.vault_path / self.history_file


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mnemo/config.toml (if exists)
    3. Environment variables (MNEMO_*)
    4. cli_overrides (passed from Typer, None values dropped)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.vault_root is None:
        # No vault configured? Use the CWD.
        config.vault_root = Path.cwd()

    return config
