"""SculptEmbed - Embeddings pipeline for markdown vaults with namespaced vector storage."""

__version__ = "0.1.0"
__description__ = "Embeddings pipeline for markdown vaults with namespaced vector storage"

# Import modules only when needed to avoid dependency issues during setup
__all__ = [
    "EmbeddingsSettings",
    "MarkdownPreprocessor",
    "FileSystemVault",
    "TokenEstimator",
]


def __getattr__(name: str):
    """Lazy import to avoid dependency issues during setup."""
    if name == "EmbeddingsSettings":
        from .config import EmbeddingsSettings
        return EmbeddingsSettings
    elif name == "MarkdownPreprocessor":
        from .preprocessor import MarkdownPreprocessor
        return MarkdownPreprocessor
    elif name == "FileSystemVault":
        from .vault import FileSystemVault
        return FileSystemVault
    elif name == "TokenEstimator":
        from .token_estimator import TokenEstimator
        return TokenEstimator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
