"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class EngineConfig(BaseModel):
    """Media engine artifacts.

    Both paths fall back to a PATH lookup when unset.
    """

    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    load_timeout_seconds: float = 30.0


class JobConfig(BaseModel):
    """Speed-up job parameters."""

    speed_factor: float = Field(default=2.0, gt=0)
    input_name: str = "input.mov"
    output_name: str = "output.mp4"
    output_mime_type: str = "video/mp4"
    accepted_mime_types: list[str] = [
        "video/quicktime",
        "video/mp4",
        "video/x-m4v",
    ]
    exec_timeout_seconds: Optional[float] = None
    max_upload_bytes: int = 1024 * 1024 * 1024


class StorageConfig(BaseModel):
    """Scratch directories for the engine namespace and published resources."""

    resource_dir: Path = Path("tmp/resources")
    engine_dir: Optional[Path] = None

    @field_validator("resource_dir", "engine_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: SPEEDUP_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="SPEEDUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    engine: EngineConfig = EngineConfig()
    job: JobConfig = JobConfig()
    storage: StorageConfig = StorageConfig()
    server: ServerConfig = ServerConfig()
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Init settings (explicit overrides, used by tests)
        2. Environment variables
        3. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance
settings = Settings()
