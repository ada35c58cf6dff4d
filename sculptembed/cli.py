"""Command-line entry point for SculptEmbed."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger

from core.exceptions import SculptEmbedError
from core.models import ProcessingProgress, ProcessingResult

from . import __version__
from .config import EmbeddingsSettings, load_settings
from .namespace import build_namespace, build_vector_id, is_stale_namespace, normalize_model_for_namespace, parse_namespace
from .vault import FileSystemVault

EXIT_OK = 0
EXIT_FAILED_PATHS = 1
EXIT_FATAL = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: Whether to enable verbose logging
    """
    logger.remove()

    if verbose:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        )
    else:
        logger.add(
            sys.stderr,
            level="INFO",
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
        )


class OutputFormatter:
    """Handles consistent output formatting across CLI commands."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def info(self, message: str) -> None:
        print(f"ℹ️  {message}")

    def success(self, message: str) -> None:
        print(f"✅ {message}")

    def warning(self, message: str) -> None:
        print(f"⚠️  {message}")

    def error(self, message: str) -> None:
        print(f"❌ {message}", file=sys.stderr)

    def verbose_info(self, message: str) -> None:
        if self.verbose:
            print(f"🔍 {message}")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the complete argument parser."""
    parser = argparse.ArgumentParser(
        prog="sculptembed",
        description="Embed a vault of markdown notes into namespaced vector storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sculptembed index ~/Notes
  sculptembed index ~/Notes --config sculptembed.yaml --verbose
  sculptembed status --vault ~/Notes
  sculptembed namespace encode custom nomic-embed-text 768
  sculptembed namespace decode custom:nomic-embed-text:v2:768
        """,
    )
    parser.add_argument("--version", action="version", version=f"sculptembed {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    index_parser = subparsers.add_parser("index", help="Embed every markdown file in a vault")
    index_parser.add_argument("vault_dir", type=Path, help="Vault root directory")
    index_parser.add_argument("--config", type=Path, help="YAML configuration file")
    index_parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    status_parser = subparsers.add_parser("status", help="List incomplete or stale files in storage")
    status_parser.add_argument("--vault", type=Path, default=None, help="Vault root (locates the default database)")
    status_parser.add_argument("--config", type=Path, help="YAML configuration file")
    status_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    status_parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    namespace_parser = subparsers.add_parser("namespace", help="Namespace codec helpers")
    namespace_sub = namespace_parser.add_subparsers(dest="namespace_command")
    encode_parser = namespace_sub.add_parser("encode", help="Build a namespace string")
    encode_parser.add_argument("provider_id")
    encode_parser.add_argument("model")
    encode_parser.add_argument("dimension", type=int)
    decode_parser = namespace_sub.add_parser("decode", help="Parse a namespace string")
    decode_parser.add_argument("namespace")

    return parser


def format_result(result: ProcessingResult, formatter: OutputFormatter) -> int:
    """Print a run summary and return the exit code."""
    formatter.info(
        f"Completed: {result.completed}, failed: {result.failed}, skipped: {len(result.skipped_paths)}"
    )

    for path in result.skipped_paths:
        formatter.verbose_info(f"Skipped (blocked content patterns): {path}")

    if result.fatal_error is not None:
        error = result.fatal_error
        hint = f" Retry in {error.retry_in_ms // 1000}s." if error.retry_in_ms else ""
        status = f" (HTTP {error.status})" if error.status else ""
        formatter.error(f"Embeddings stopped: {error.code.value}{status}: {error.message}.{hint}")
        return EXIT_FATAL

    if result.failed_paths:
        formatter.warning("Failed files:")
        for path in result.failed_paths:
            detail = result.failed_details.get(path)
            print(f"  {path}" + (f": {detail.code} {detail.message}" if detail else ""))
        return EXIT_FAILED_PATHS

    formatter.success("All files embedded")
    return EXIT_OK


async def index_command(args: argparse.Namespace, formatter: OutputFormatter) -> int:
    """Embed every markdown file under ``args.vault_dir``."""
    from registry import ProviderRegistry

    vault = FileSystemVault(args.vault_dir)
    settings = load_settings(config_file=args.config, search_dirs=[vault.root, Path.cwd()])
    registry = ProviderRegistry()
    registry.configure(settings, vault.root)

    paths = vault.list_markdown_files()
    formatter.info(f"Indexing {len(paths)} files in {vault.root}")
    formatter.verbose_info(repr(settings))

    processor = registry.create_embeddings_processor()

    def report(progress: ProcessingProgress) -> None:
        logger.debug(f"Progress {progress.current}/{progress.total}")

    try:
        result = await processor.process_files(paths, vault, on_progress=report)
    finally:
        await registry.close()

    return format_result(result, formatter)


async def status_command(args: argparse.Namespace, formatter: OutputFormatter) -> int:
    """Report stored files that are incomplete or under a stale namespace."""
    from registry import ProviderRegistry

    vault_root = args.vault.expanduser().resolve() if args.vault else None
    search_dirs: List[Path] = [d for d in (vault_root, Path.cwd()) if d is not None]
    settings = load_settings(config_file=args.config, search_dirs=search_dirs)
    registry = ProviderRegistry()
    registry.configure(settings, vault_root)

    try:
        report = await collect_status(registry.get_provider("storage"), settings)
    finally:
        await registry.close()

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        formatter.info(f"{report['paths']} files in storage")
        for path in report["incomplete"]:
            print(f"  incomplete: {path}")
        for path in report["stale"]:
            print(f"  stale namespace: {path}")
        if not report["incomplete"] and not report["stale"]:
            formatter.success("Storage is up to date")
    return EXIT_OK


async def collect_status(storage, settings: EmbeddingsSettings) -> dict:
    """Collect incomplete and stale paths from ``storage``."""
    model = normalize_model_for_namespace(settings.provider_id, settings.model)
    incomplete: List[str] = []
    stale: List[str] = []

    paths = await storage.get_distinct_paths()
    for path in paths:
        vectors = await storage.get_vectors_by_path(path)
        if any(
            is_stale_namespace(v.namespace, settings.provider_id, model, settings.expected_dimension)
            for v in vectors
        ):
            stale.append(path)
        if any(v.is_root and v.metadata.complete is False for v in vectors):
            incomplete.append(path)

    return {"paths": len(paths), "incomplete": incomplete, "stale": stale}


def namespace_command(args: argparse.Namespace) -> int:
    if args.namespace_command == "encode":
        namespace = build_namespace(args.provider_id, args.model, args.dimension)
        print(namespace)
        print(build_vector_id(namespace, "<path>", 0))
        return EXIT_OK

    if args.namespace_command == "decode":
        parsed = parse_namespace(args.namespace)
        if parsed is None:
            print(f"Not a namespace: {args.namespace}", file=sys.stderr)
            return EXIT_FAILED_PATHS
        print(json.dumps(
            {
                "provider": parsed.provider,
                "model": parsed.model,
                "schema": parsed.schema,
                "dimension": parsed.dimension,
            },
            indent=2,
        ))
        return EXIT_OK

    print("Usage: sculptembed namespace encode|decode ...", file=sys.stderr)
    return EXIT_FAILED_PATHS


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Async main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILED_PATHS

    setup_logging(getattr(args, "verbose", False))
    formatter = OutputFormatter(verbose=getattr(args, "verbose", False))

    try:
        if args.command == "index":
            return await index_command(args, formatter)
        if args.command == "status":
            return await status_command(args, formatter)
        if args.command == "namespace":
            return namespace_command(args)
        logger.error(f"Unknown command: {args.command}")
        return EXIT_FAILED_PATHS
    except SculptEmbedError as e:
        formatter.error(str(e))
        logger.debug("Full error details:", exc_info=True)
        return EXIT_FATAL


def main() -> None:
    """Main entry point for the CLI."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
