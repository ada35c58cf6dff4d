"""Configuration for SculptEmbed.

Settings are loaded with pydantic-settings. Sources, in order of precedence:

1. Explicit overrides passed to ``load_settings`` (highest priority)
2. Environment variables (SCULPTEMBED_*)
3. YAML configuration file
4. Default values (lowest priority)

Environment Variable Examples:
    SCULPTEMBED_PROVIDER_ID=custom
    SCULPTEMBED_BASE_URL=http://localhost:11434/api/embeddings
    SCULPTEMBED_MODEL=nomic-embed-text
    SCULPTEMBED_BATCH_SIZE=25
    SCULPTEMBED_STORAGE=duckdb
"""

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from core.exceptions import ConfigurationError

DEFAULT_CONFIG_NAMES = ("sculptembed.yaml", "sculptembed.yml", ".sculptembed.yaml", ".sculptembed.yml")
DEFAULT_DB_NAME = ".sculptembed.duckdb"

_active_config_files: ContextVar[Tuple[Path, ...]] = ContextVar("sculptembed_config_files", default=())


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by one or more YAML files; later files win."""

    def __init__(self, settings_cls: Type[BaseSettings], config_files: List[Union[str, Path]]):
        super().__init__(settings_cls)
        self.config_files = [Path(f) for f in config_files]
        self._data = self._load_files()

    def _load_files(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for config_file in self.config_files:
            if not config_file.exists():
                logger.warning(f"Config file {config_file} not found")
                continue
            with open(config_file, "r", encoding="utf-8") as f:
                try:
                    data = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        config_key="config_file",
                        config_value=str(config_file),
                        reason=f"Invalid YAML: {e}",
                    ) from e
            if isinstance(data, dict):
                merged.update(data)
        return merged

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        if field_name in self._data:
            return self._data[field_name], field_name, True
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        return self._data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config_files={[str(f) for f in self.config_files]})"


class ProcessorConfig(BaseModel):
    """Knobs consumed by the embeddings processor."""

    batch_size: int = Field(default=25, ge=1, le=2048)
    max_concurrency: int = Field(default=2, ge=1, le=64)
    rate_limit_per_minute: Optional[int] = Field(default=None, ge=1)
    max_tokens_per_request: int = Field(default=100_000, ge=1)
    max_tokens_per_text: int = Field(default=8_000, ge=1)
    max_transient_errors: int = Field(default=10, ge=1)
    skip_waf_patterns: bool = Field(default=True)


class EmbeddingsSettings(BaseSettings):
    """Unified configuration for provider, storage and processing."""

    model_config = SettingsConfigDict(
        env_prefix="SCULPTEMBED_",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Provider
    provider_id: str = Field(
        default="custom",
        description="Provider id recorded in namespaces ('systemsculpt' enables model alias normalization)",
    )
    model: str = Field(default="text-embedding-3-small", description="Embedding model name")
    api_key: Optional[SecretStr] = Field(default=None, description="API key for authentication")
    base_url: Optional[str] = Field(default=None, description="Embeddings endpoint URL")
    api_format: Literal["auto", "openai", "ollama"] = Field(
        default="auto",
        description="Request/response format; 'auto' detects Ollama from the endpoint path",
    )
    expected_dimension: Optional[int] = Field(default=None, ge=1, le=16384)
    timeout: int = Field(default=60, ge=1, le=600, description="Request timeout in seconds")
    max_batch_items: int = Field(default=25, ge=1, le=2048, description="Provider per-request item cap")

    # Processing
    batch_size: int = Field(default=25, ge=1, le=2048)
    max_concurrency: int = Field(default=2, ge=1, le=64)
    rate_limit_per_minute: Optional[int] = Field(default=None, ge=1)
    max_tokens_per_request: int = Field(default=100_000, ge=1)
    max_tokens_per_text: int = Field(default=8_000, ge=1)
    max_transient_errors: int = Field(default=10, ge=1)
    skip_waf_patterns: bool = Field(default=True)

    # Storage
    storage: Literal["memory", "duckdb"] = Field(default="duckdb")
    db_path: Optional[str] = Field(default=None, description="DuckDB file (defaults inside the vault)")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        sources: List[PydanticBaseSettingsSource] = [init_settings, env_settings]
        config_files = _active_config_files.get()
        if config_files:
            sources.append(YamlConfigSettingsSource(settings_cls, list(config_files)))
        return tuple(sources)

    @field_validator("base_url")
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate and normalize base URL."""
        if v is None:
            return v

        v = v.rstrip("/")
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v

    @field_validator("provider_id", "model")
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    def processor_config(self) -> ProcessorConfig:
        return ProcessorConfig(
            batch_size=self.batch_size,
            max_concurrency=self.max_concurrency,
            rate_limit_per_minute=self.rate_limit_per_minute,
            max_tokens_per_request=self.max_tokens_per_request,
            max_tokens_per_text=self.max_tokens_per_text,
            max_transient_errors=self.max_transient_errors,
            skip_waf_patterns=self.skip_waf_patterns,
        )

    def resolve_db_path(self, vault_dir: Optional[Path] = None) -> Path:
        if self.db_path:
            return Path(self.db_path).expanduser()
        return (vault_dir or Path.cwd()) / DEFAULT_DB_NAME

    def get_missing_config(self) -> List[str]:
        missing = []
        if not self.base_url:
            missing.append("base_url (SCULPTEMBED_BASE_URL)")
        return missing

    def __repr__(self) -> str:
        """String representation hiding sensitive information."""
        api_key_display = "***" if self.api_key else None
        return (
            f"EmbeddingsSettings("
            f"provider_id={self.provider_id}, "
            f"model={self.model}, "
            f"api_key={api_key_display}, "
            f"base_url={self.base_url}, "
            f"batch_size={self.batch_size}, "
            f"storage={self.storage})"
        )


def find_config_files(base_dirs: Optional[List[Union[str, Path]]] = None) -> List[Path]:
    """Find YAML configuration files in the given directories (default: cwd)."""
    dirs = [Path(d) for d in base_dirs] if base_dirs is not None else [Path.cwd()]
    found = []
    for base_dir in dirs:
        for name in DEFAULT_CONFIG_NAMES:
            candidate = base_dir / name
            if candidate.is_file():
                found.append(candidate)
    return found


def load_settings(
    config_file: Optional[Union[str, Path]] = None,
    search_dirs: Optional[List[Union[str, Path]]] = None,
    **overrides: Any,
) -> EmbeddingsSettings:
    """Load settings from overrides, environment and YAML.

    Args:
        config_file: Explicit YAML file; when omitted, ``search_dirs`` are scanned
        search_dirs: Directories searched for default config file names
        **overrides: Values that take precedence over every other source

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the YAML file is invalid or validation fails
    """
    files: List[Path] = [Path(config_file)] if config_file else find_config_files(search_dirs)
    token = _active_config_files.set(tuple(files))
    try:
        explicit = {key: value for key, value in overrides.items() if value is not None}
        return EmbeddingsSettings(**explicit)
    except ValueError as e:
        raise ConfigurationError(reason=str(e)) from e
    finally:
        _active_config_files.reset(token)
