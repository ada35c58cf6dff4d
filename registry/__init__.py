"""Provider registry and dependency injection container for SculptEmbed."""

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from loguru import logger

from core.exceptions import ConfigurationError
from providers.embeddings.custom_provider import CustomEmbeddingsProvider
from providers.storage.duckdb_storage import DuckDBVectorStorage
from providers.storage.memory_storage import InMemoryVectorStorage
from sculptembed.config import EmbeddingsSettings
from sculptembed.preprocessor import MarkdownPreprocessor
from services.embeddings_processor import EmbeddingsProcessor


class ProviderRegistry:
    """Registry for managing provider implementations and dependency injection.

    Components are registered as factories taking the active settings; the
    registry caches singletons until it is reconfigured.
    """

    def __init__(self, settings: Optional[EmbeddingsSettings] = None):
        """Initialize the provider registry.

        Args:
            settings: Settings used to build components (defaults are used when omitted)
        """
        self._providers: Dict[str, Callable[[EmbeddingsSettings], Any]] = {}
        self._singletons: Dict[str, Any] = {}
        self._settings = settings or EmbeddingsSettings()
        self._vault_dir: Optional[Path] = None

        self._register_default_providers()

    @property
    def settings(self) -> EmbeddingsSettings:
        return self._settings

    def configure(self, settings: EmbeddingsSettings, vault_dir: Optional[Path] = None) -> None:
        """Configure the registry with application settings.

        Args:
            settings: Validated settings
            vault_dir: Vault root, used to place the default DuckDB file
        """
        self._settings = settings
        self._vault_dir = vault_dir
        self._singletons.clear()
        logger.info(f"Provider registry configured: {settings!r}")

    def register_provider(self, name: str, factory: Callable[[EmbeddingsSettings], Any]) -> None:
        """Register a component factory.

        Args:
            name: Component name ("embeddings", "storage", "preprocessor")
            factory: Callable building the component from settings
        """
        self._providers[name] = factory
        self._singletons.pop(name, None)
        logger.debug(f"Registered factory for {name}")

    def get_provider(self, name: str) -> Any:
        """Get the (singleton) component registered under ``name``.

        Raises:
            ValueError: If nothing is registered for the name
        """
        if name not in self._providers:
            raise ValueError(f"No provider registered for {name}")

        if name not in self._singletons:
            self._singletons[name] = self._providers[name](self._settings)
        return self._singletons[name]

    def create_embeddings_processor(self) -> EmbeddingsProcessor:
        """Create an EmbeddingsProcessor wired to the registered components."""
        return EmbeddingsProcessor(
            provider=self.get_provider("embeddings"),
            storage=self.get_provider("storage"),
            preprocessor=self.get_provider("preprocessor"),
            config=self._settings.processor_config(),
        )

    async def close(self) -> None:
        """Close the storage singleton, if one was created."""
        storage = self._singletons.pop("storage", None)
        if storage is not None:
            await storage.close()

    def _register_default_providers(self) -> None:
        self.register_provider("embeddings", self._create_embeddings_provider)
        self.register_provider("storage", self._create_storage)
        self.register_provider("preprocessor", lambda settings: MarkdownPreprocessor())

    @staticmethod
    def _create_embeddings_provider(settings: EmbeddingsSettings) -> CustomEmbeddingsProvider:
        missing = settings.get_missing_config()
        if missing:
            raise ConfigurationError(
                config_key="base_url",
                reason=f"Missing embeddings configuration: {', '.join(missing)}",
            )

        logger.debug(f"Creating embeddings provider {settings.provider_id}/{settings.model}")
        return CustomEmbeddingsProvider(
            base_url=settings.base_url,
            model=settings.model,
            api_key=settings.api_key.get_secret_value() if settings.api_key else None,
            provider_id=settings.provider_id,
            max_batch_size=settings.max_batch_items,
            expected_dimension=settings.expected_dimension,
            timeout=settings.timeout,
            api_format=settings.api_format,
        )

    def _create_storage(self, settings: EmbeddingsSettings) -> Any:
        if settings.storage == "memory":
            return InMemoryVectorStorage()

        storage = DuckDBVectorStorage(settings.resolve_db_path(self._vault_dir))
        storage.connect()
        return storage


# Global registry instance (lazy initialization)
_registry = None


def get_registry() -> ProviderRegistry:
    """Get the global registry instance.

    Returns:
        Global ProviderRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry


def configure_registry(settings: EmbeddingsSettings, vault_dir: Optional[Path] = None) -> ProviderRegistry:
    """Configure the global provider registry."""
    registry = get_registry()
    registry.configure(settings, vault_dir)
    return registry


def get_provider(name: str) -> Any:
    """Get a component from the global registry."""
    return get_registry().get_provider(name)


def create_embeddings_processor() -> EmbeddingsProcessor:
    """Create an EmbeddingsProcessor from the global registry."""
    return get_registry().create_embeddings_processor()


__all__ = [
    'ProviderRegistry',
    'get_registry',
    'configure_registry',
    'get_provider',
    'create_embeddings_processor',
]
