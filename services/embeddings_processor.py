"""Embeddings processor - turns markdown files into stored, namespaced vectors.

For every file the processor reads the content, chunks it, reuses stored
vectors whose content hash still matches, embeds the remaining chunks in
provider-sized batches and finally reconciles storage so that exactly the
current chunk set survives under the file's namespace.

Provider failures are classified once (see ``core.models.failure``) and
dispatched on their variant:

- fatal and cooldown failures halt the whole run; the first one is surfaced
- gateway HTML 403s are isolated to the offending chunk by bisection when a
  probe request shows the block is content-scoped
- other transient failures fail the affected file only, until
  ``max_transient_errors`` of them have been seen
"""

import asyncio
import inspect
import math
import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from loguru import logger

from core.exceptions import EmbeddingCountMismatchError, EmbeddingsProviderError, StorageError
from core.models import (
    Chunk,
    ContentBlockedFailure,
    CooldownFailure,
    FailedProcessingDetail,
    FatalFailure,
    ProcessingProgress,
    ProcessingResult,
    ProviderFailure,
    UnknownFailure,
    VectorMetadata,
    VectorRecord,
    classify_failure,
)
from core.types import ProviderErrorCode
from interfaces.content_preprocessor import ContentPreprocessor
from interfaces.embedding_provider import EmbeddingsProvider
from interfaces.vault import Vault
from interfaces.vector_storage import VectorStorage
from sculptembed.batching import BatchPlanner, enforce_batch_size_limit, resolve_effective_batch_size
from sculptembed.config import ProcessorConfig
from sculptembed.content_signals import detect_waf_signals, format_signals_label, match_waf_block_patterns
from sculptembed.namespace import (
    DEFAULT_EMBEDDING_DIMENSION,
    build_namespace,
    build_vector_id,
    namespace_matches_current_version,
    normalize_model_for_namespace,
    parse_namespace,
)
from sculptembed.token_estimator import DEFAULT_HARD_MAX_BATCH_SIZE, TokenEstimator

from .base_service import BaseService

EXCERPT_MAX_CHARS = 220
SECTION_TITLE_MAX_CHARS = 80
PROBE_TEXT = "hello"
MAX_LOGGED_FILES = 40
MAX_LOGGED_SUMMARY_CHARS = 1400

ProgressCallback = Callable[[ProcessingProgress], Any]

# Marks a batch position that was never sent because the run halted mid-bisection.
_NOT_SENT = object()


@dataclass
class _PendingChunk:
    chunk: Chunk
    text: str


@dataclass
class _FileState:
    path: str
    title: str
    mtime: Optional[float]
    chunk_count: int
    namespace: Optional[str] = None
    failed_indices: Set[int] = field(default_factory=set)
    unsent_indices: Set[int] = field(default_factory=set)

    def keep_indices(self) -> Set[int]:
        return set(range(self.chunk_count)) - self.failed_indices


def build_excerpt(text: str, section_title: Optional[str] = None) -> str:
    """Collapse whitespace and cut ``text`` into a short display excerpt."""
    collapsed = " ".join(text.split())
    base = collapsed if len(collapsed) <= EXCERPT_MAX_CHARS else collapsed[:EXCERPT_MAX_CHARS].rstrip() + "..."
    if not section_title:
        return base

    heading = section_title.strip()
    if len(heading) > SECTION_TITLE_MAX_CHARS:
        heading = heading[: SECTION_TITLE_MAX_CHARS - 3].rstrip() + "..."
    return f"{heading} - {base}" if base else heading


def normalize_vector(vector: Sequence[float], provider_id: Optional[str] = None) -> List[float]:
    """L2-normalize ``vector``.

    Raises:
        EmbeddingsProviderError: If the vector is empty, has a zero norm or non-finite values
    """
    try:
        values = [float(x) for x in vector]
    except (TypeError, ValueError) as e:
        raise EmbeddingsProviderError(
            f"Provider returned a non-numeric vector: {e}",
            code=ProviderErrorCode.INVALID_VECTOR,
            provider_id=provider_id,
        ) from e

    norm = math.sqrt(sum(x * x for x in values))
    if not values or norm == 0 or not math.isfinite(norm):
        raise EmbeddingsProviderError(
            "Provider returned an invalid embedding vector (zero norm)",
            code=ProviderErrorCode.INVALID_VECTOR,
            provider_id=provider_id,
            details={"dimension": len(values)},
        )
    return [x / norm for x in values]


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


class EmbeddingsProcessor(BaseService):
    """Embeds markdown files and keeps vector storage reconciled with them."""

    def __init__(
        self,
        provider: EmbeddingsProvider,
        storage: VectorStorage,
        preprocessor: ContentPreprocessor,
        config: Optional[ProcessorConfig] = None,
    ):
        """Initialize the processor.

        Args:
            provider: Embeddings provider used for every request
            storage: Vector storage
            preprocessor: Markdown preprocessor producing chunks
            config: Batch, concurrency and failure limits
        """
        super().__init__(storage)
        self._provider = provider
        self._preprocessor = preprocessor
        self._config = config or ProcessorConfig()
        self._estimator = TokenEstimator(
            max_tokens_per_request=self._config.max_tokens_per_request,
            max_tokens_per_text=self._config.max_tokens_per_text,
        )

        self._halted = False
        self._fatal_error: Optional[EmbeddingsProviderError] = None
        self._failed_paths: Dict[str, None] = {}
        self._failed_details: Dict[str, FailedProcessingDetail] = {}
        self._skipped_paths: List[str] = []
        self._completed = 0
        self._transient_error_count = 0
        self._learned_dimension: Optional[int] = None
        self._block_scope: Optional[str] = None
        self._probe_lock = asyncio.Lock()
        self._rate_lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

    @property
    def provider(self) -> EmbeddingsProvider:
        return self._provider

    @property
    def config(self) -> ProcessorConfig:
        return self._config

    def set_provider(self, provider: EmbeddingsProvider) -> None:
        """Swap the provider used by subsequent runs."""
        self._provider = provider
        logger.info(f"Embeddings provider set to {self._provider_id()}/{self._model_id()}")

    def set_config(self, config: ProcessorConfig) -> None:
        """Swap the processing configuration used by subsequent runs."""
        self._config = config
        self._estimator = TokenEstimator(
            max_tokens_per_request=config.max_tokens_per_request,
            max_tokens_per_text=config.max_tokens_per_text,
        )

    def cancel(self) -> None:
        """Stop the current run; no new requests are issued after this call."""
        if not self._halted:
            logger.info("Embeddings processing cancelled")
        self._halted = True

    def cleanup(self) -> None:
        self.cancel()

    # Provider identity ---------------------------------------------------

    def _provider_id(self) -> str:
        provider_id = getattr(self._provider, "provider_id", None)
        return provider_id if isinstance(provider_id, str) and provider_id else "unknown"

    def _model_id(self) -> str:
        model = getattr(self._provider, "model", None)
        raw = model if isinstance(model, str) and model else "unknown"
        return normalize_model_for_namespace(self._provider_id(), raw)

    def _expected_dimension(self) -> Optional[int]:
        dimension = getattr(self._provider, "expected_dimension", None)
        if isinstance(dimension, int) and not isinstance(dimension, bool) and dimension > 0:
            return dimension
        return None

    def _provider_batch_limit(self) -> int:
        try:
            limit = self._provider.get_max_batch_size()
        except (AttributeError, NotImplementedError):
            return DEFAULT_HARD_MAX_BATCH_SIZE
        if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
            return limit
        return DEFAULT_HARD_MAX_BATCH_SIZE

    def _known_namespace(self) -> Optional[str]:
        dimension = self._expected_dimension() or self._learned_dimension
        if not dimension:
            return None
        return build_namespace(self._provider_id(), self._model_id(), dimension)

    # Run ----------------------------------------------------------------

    def _reset_run(self) -> None:
        self._halted = False
        self._fatal_error = None
        self._failed_paths = {}
        self._failed_details = {}
        self._skipped_paths = []
        self._completed = 0
        self._transient_error_count = 0
        self._learned_dimension = None
        self._block_scope = None
        self._last_request_at = None

    async def process_files(
        self,
        paths: Sequence[str],
        vault: Vault,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        """Embed ``paths`` and reconcile their stored vectors.

        Args:
            paths: Vault-relative file paths to process
            vault: Source of file contents
            on_progress: Called with a ProcessingProgress after each finished file

        Returns:
            ProcessingResult with the first fatal error (if any), failed paths and details
        """
        self._reset_run()
        unique_paths = list(dict.fromkeys(paths))
        total = len(unique_paths)
        handled = 0

        logger.info(
            f"Processing {total} files with {self._provider_id()}/{self._model_id()} "
            f"(concurrency={self._config.max_concurrency})"
        )

        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def process_one(path: str) -> None:
            nonlocal handled
            async with semaphore:
                if self._halted:
                    return
                await self._process_file(path, vault)
                handled += 1
                if on_progress is not None:
                    outcome = on_progress(ProcessingProgress(current=handled, total=total))
                    if inspect.isawaitable(outcome):
                        await outcome

        await asyncio.gather(*(process_one(path) for path in unique_paths))

        result = ProcessingResult(
            fatal_error=self._fatal_error,
            failed_paths=list(self._failed_paths),
            completed=self._completed,
            skipped_paths=list(self._skipped_paths),
            failed_details=dict(self._failed_details),
        )
        logger.info(
            f"Embeddings run finished: {result.completed} completed, {result.failed} failed, "
            f"{len(result.skipped_paths)} skipped"
            + (f", halted by {result.fatal_error.code.value}" if result.fatal_error else "")
        )
        return result

    def _mark_failed(self, path: str, detail: FailedProcessingDetail) -> None:
        self._failed_paths.setdefault(path, None)
        self._failed_details.setdefault(path, detail)

    def _file_mtime(self, vault: Vault, path: str) -> Optional[float]:
        getter = getattr(vault, "get_mtime", None)
        if not callable(getter):
            return None
        value = getter(path)
        return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None

    def _chunk(self, content: str, path: str) -> List[Chunk]:
        processed = self._preprocessor.process(content, path)
        if processed is None:
            return []

        if isinstance(processed, dict):
            cleaned = processed.get("content") or ""
            source = processed.get("source")
        else:
            cleaned = processed.content
            source = processed.source

        raw_chunks = self._preprocessor.chunk_content_with_hashes(cleaned, source if source is not None else content)
        return [Chunk.from_dict(c) if isinstance(c, dict) else c for c in raw_chunks]

    async def _process_file(self, path: str, vault: Vault) -> None:
        try:
            content = await vault.read(path)
        except Exception as e:
            logger.warning(f"Failed to read {path}: {e}")
            self._mark_failed(path, FailedProcessingDetail(code="READ_ERROR", message=str(e)))
            return

        if self._config.skip_waf_patterns:
            matched = match_waf_block_patterns(content)
            if matched:
                logger.warning(f"Skipping {path}: content matches gateway block patterns ({', '.join(matched)})")
                self._skipped_paths.append(path)
                return

        try:
            chunks = self._chunk(content, path)
        except Exception as e:
            logger.warning(f"Failed to preprocess {path}: {e}")
            self._mark_failed(path, FailedProcessingDetail(code="PREPROCESS_ERROR", message=str(e)))
            return

        state = _FileState(
            path=path,
            title=PurePosixPath(path).stem,
            mtime=self._file_mtime(vault, path),
            chunk_count=len(chunks),
        )

        try:
            if not chunks:
                await self._store_empty_sentinel(state)
                return

            pending = await self._reuse_existing(state, chunks)
            if pending:
                await self._embed_pending(state, pending)
            await self._finalize_file(state)
        except StorageError as e:
            logger.error(f"Storage failure while processing {path}: {e}")
            self._mark_failed(path, FailedProcessingDetail(code="STORAGE_ERROR", message=str(e)))

    async def _store_empty_sentinel(self, state: _FileState) -> None:
        """Store a zero vector marking a file with nothing to embed."""
        dimension = self._expected_dimension() or self._learned_dimension or DEFAULT_EMBEDDING_DIMENSION
        namespace = build_namespace(self._provider_id(), self._model_id(), dimension)
        vector_id = build_vector_id(namespace, state.path, 0)
        sentinel = VectorRecord(
            id=vector_id,
            path=state.path,
            chunk_id=0,
            embedding=[0.0] * dimension,
            metadata=VectorMetadata(
                namespace=namespace,
                provider=self._provider_id(),
                model=self._model_id(),
                dimension=dimension,
                content_hash="empty",
                title=state.title,
                excerpt="",
                mtime=state.mtime,
                created_at=time.time() * 1000,
                is_empty=True,
                complete=True,
                chunk_count=0,
            ),
        )
        await self.storage.store_vectors([sentinel])
        await self.storage.remove_by_path_except_ids(state.path, namespace, {vector_id})
        self._completed += 1
        logger.debug(f"Stored empty sentinel for {state.path}")

    # Reuse ----------------------------------------------------------------

    def _is_reusable(self, vector: VectorRecord, expected_dimension: Optional[int]) -> bool:
        metadata = vector.metadata
        if metadata.is_empty:
            return False

        parsed = parse_namespace(metadata.namespace)
        provider = metadata.provider or (parsed.provider if parsed else None)
        model = metadata.model or (parsed.model if parsed else None)
        if provider != self._provider_id() or not model:
            return False
        if normalize_model_for_namespace(provider, model) != self._model_id():
            return False

        dimension = vector.dimension
        if dimension <= 0:
            return False
        return not expected_dimension or dimension == expected_dimension

    def _pick_candidate(
        self, candidates: List[VectorRecord], expected_dimension: Optional[int]
    ) -> Optional[VectorRecord]:
        reusable = [v for v in candidates if self._is_reusable(v, expected_dimension)]
        for vector in reusable:
            if namespace_matches_current_version(
                vector.namespace, self._provider_id(), self._model_id(), expected_dimension
            ):
                return vector
        return reusable[0] if reusable else None

    def _refreshed_vector(self, existing: VectorRecord, state: _FileState, chunk: Chunk) -> Optional[VectorRecord]:
        """Rekey and refresh metadata of a reused vector; None if nothing changed."""
        namespace = build_namespace(self._provider_id(), self._model_id(), existing.dimension)
        target_id = build_vector_id(namespace, state.path, chunk.index)
        section_title = chunk.section_title
        is_root = chunk.index == 0
        metadata = VectorMetadata(
            namespace=namespace,
            provider=self._provider_id(),
            model=self._model_id(),
            dimension=existing.dimension,
            content_hash=chunk.hash,
            title=state.title,
            excerpt=build_excerpt(chunk.text, section_title),
            mtime=state.mtime if state.mtime is not None else existing.metadata.mtime,
            created_at=existing.metadata.created_at,
            section_title=section_title,
            heading_path=list(chunk.heading_path),
            chunk_length=chunk.length or len(chunk.text),
            complete=existing.metadata.complete if is_root else None,
            chunk_count=existing.metadata.chunk_count if is_root else None,
        )
        if target_id == existing.id and existing.chunk_id == chunk.index and metadata == existing.metadata:
            return None

        return VectorRecord(
            id=target_id,
            path=state.path,
            chunk_id=chunk.index,
            embedding=existing.embedding,
            metadata=metadata,
        )

    async def _reuse_existing(self, state: _FileState, chunks: List[Chunk]) -> List[_PendingChunk]:
        """Reuse stored vectors whose content hash matches; return chunks still to embed."""
        expected_dimension = self._expected_dimension()
        existing = await self.storage.get_vectors_by_path(state.path)

        by_hash: Dict[str, List[VectorRecord]] = {}
        for vector in existing:
            by_hash.setdefault(vector.metadata.content_hash, []).append(vector)

        refreshed: List[VectorRecord] = []
        replaced_ids: List[str] = []
        pending: List[_PendingChunk] = []
        reused = 0

        for chunk in chunks:
            candidates = by_hash.get(chunk.hash, [])
            candidate = self._pick_candidate(candidates, expected_dimension)
            if candidate is None:
                text = self._estimator.truncate_to_token_limit(chunk.text, self._config.max_tokens_per_text)
                pending.append(_PendingChunk(chunk=chunk, text=text))
                continue

            # each stored vector backs at most one chunk
            candidates.remove(candidate)
            reused += 1
            state.namespace = state.namespace or build_namespace(
                self._provider_id(), self._model_id(), candidate.dimension
            )
            updated = self._refreshed_vector(candidate, state, chunk)
            if updated is not None:
                refreshed.append(updated)
                if updated.id != candidate.id:
                    replaced_ids.append(candidate.id)

        if refreshed:
            await self.storage.store_vectors(refreshed)
            written = {v.id for v in refreshed}
            stale = [vector_id for vector_id in replaced_ids if vector_id not in written]
            if stale:
                await self.storage.remove_ids(stale)

        if reused:
            logger.debug(
                f"{state.path}: reused {reused}/{len(chunks)} chunks ({len(refreshed)} metadata refreshes)"
            )
        return pending

    # Embedding ------------------------------------------------------------

    async def _embed_pending(self, state: _FileState, pending: List[_PendingChunk]) -> None:
        limit = resolve_effective_batch_size(self._config.batch_size, self._provider_batch_limit())
        planner = BatchPlanner(
            max_items=limit,
            max_tokens_per_request=self._config.max_tokens_per_request,
            estimator=self._estimator,
        )
        batches = enforce_batch_size_limit(planner.plan(pending, text_of=lambda item: item.text), limit)
        logger.debug(f"{state.path}: {len(pending)} chunks in {len(batches)} batches (limit {limit})")

        for position, batch in enumerate(batches):
            if self._halted:
                for later in batches[position:]:
                    state.unsent_indices.update(item.chunk.index for item in later)
                break
            await self._embed_batch(state, batch)

    async def _embed_batch(self, state: _FileState, batch: List[_PendingChunk]) -> None:
        texts = [item.text for item in batch]
        try:
            results = await self._generate_with_isolation(state, batch, texts)
            if len(results) != len(texts):
                raise EmbeddingCountMismatchError(len(texts), len(results), self._provider_id())

            records: List[VectorRecord] = []
            for item, raw in zip(batch, results):
                if raw is _NOT_SENT:
                    state.unsent_indices.add(item.chunk.index)
                    continue
                if raw is None:
                    state.failed_indices.add(item.chunk.index)
                    continue
                records.append(self._build_record(state, item, normalize_vector(raw, self._provider_id())))

            if records:
                await self.storage.store_vectors(records)
        except StorageError:
            raise
        except Exception as e:
            self._handle_batch_failure(state, batch, classify_failure(e, self._provider_id()))

    def _build_record(self, state: _FileState, item: _PendingChunk, vector: List[float]) -> VectorRecord:
        dimension = len(vector)
        if self._learned_dimension is None:
            self._learned_dimension = dimension
        namespace = build_namespace(self._provider_id(), self._model_id(), dimension)
        state.namespace = namespace

        chunk = item.chunk
        section_title = chunk.section_title
        return VectorRecord(
            id=build_vector_id(namespace, state.path, chunk.index),
            path=state.path,
            chunk_id=chunk.index,
            embedding=vector,
            metadata=VectorMetadata(
                namespace=namespace,
                provider=self._provider_id(),
                model=self._model_id(),
                dimension=dimension,
                content_hash=chunk.hash,
                title=state.title,
                excerpt=build_excerpt(chunk.text, section_title),
                mtime=state.mtime,
                created_at=time.time() * 1000,
                section_title=section_title,
                heading_path=list(chunk.heading_path),
                chunk_length=chunk.length or len(chunk.text),
            ),
        )

    async def _enforce_rate_limit(self) -> None:
        per_minute = self._config.rate_limit_per_minute
        if not per_minute:
            return

        interval = 60.0 / per_minute
        loop = asyncio.get_running_loop()
        async with self._rate_lock:
            if self._last_request_at is not None:
                wait = self._last_request_at + interval - loop.time()
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_request_at = loop.time()

    async def _request(self, texts: List[str]) -> List[Any]:
        await self._enforce_rate_limit()
        return await self._provider.generate_embeddings(texts)

    async def _resolve_block_scope(self) -> str:
        """Probe once per run whether HTML 403s are tied to content or global."""
        async with self._probe_lock:
            if self._block_scope is None:
                try:
                    probe = await self._request([PROBE_TEXT])
                    ok = isinstance(probe, list) and len(probe) == 1
                except Exception as e:
                    logger.debug(f"Gateway probe request failed: {e}")
                    ok = False
                self._block_scope = "content" if ok else "global"
                logger.info(f"Gateway 403s treated as {self._block_scope}-scoped")
        return self._block_scope

    async def _generate_with_isolation(
        self, state: _FileState, batch: List[_PendingChunk], texts: List[str]
    ) -> List[Any]:
        """Embed ``texts``; content-scoped HTML 403s are narrowed down to single chunks.

        Returns one entry per text: a vector, None for a blocked chunk, or
        ``_NOT_SENT`` when the run halted before the text was sent.
        """
        if self._halted:
            return [_NOT_SENT] * len(texts)

        try:
            return list(await self._request(texts))
        except Exception as e:
            failure = classify_failure(e, self._provider_id())
            if not isinstance(failure, ContentBlockedFailure):
                raise
            if await self._resolve_block_scope() != "content":
                raise

            if len(texts) == 1:
                self._record_blocked_chunk(state, batch[0], failure.error)
                return [None]

            mid = math.ceil(len(texts) / 2)
            logger.debug(f"{state.path}: bisecting blocked batch of {len(texts)} at {mid}")
            left = await self._generate_with_isolation(state, batch[:mid], texts[:mid])
            right = await self._generate_with_isolation(state, batch[mid:], texts[mid:])
            return left + right

    def _record_blocked_chunk(self, state: _FileState, item: _PendingChunk, error: EmbeddingsProviderError) -> None:
        chunk = item.chunk
        signals = detect_waf_signals(item.text)
        section_title = chunk.section_title
        self._mark_failed(
            state.path,
            FailedProcessingDetail(
                code=error.code.value,
                message=(
                    f"Embeddings request blocked by gateway/WAF (HTML 403) for chunk {chunk.index}"
                    + (f" in section '{section_title}'" if section_title else "")
                ),
                status=error.status,
                retry_in_ms=error.retry_in_ms,
                chunk_id=chunk.index,
                section_title=section_title,
                heading_path=list(chunk.heading_path),
                signals=signals,
            ),
        )
        label = format_signals_label(signals)
        logger.warning(f"Gateway blocked chunk {chunk.index} of {state.path}{label}")

    # Failure handling -----------------------------------------------------

    def _halt(self, error: EmbeddingsProviderError, paths: List[str]) -> None:
        if self._fatal_error is None:
            self._fatal_error = error
        self._halted = True

        shown = paths[:MAX_LOGGED_FILES]
        more = f" (+{len(paths) - len(shown)} more)" if len(paths) > len(shown) else ""
        summary = _clip(
            f"{error.code.value} status={error.status} retry_in_ms={error.retry_in_ms}: {error.message}",
            MAX_LOGGED_SUMMARY_CHARS,
        )
        logger.error(f"Embeddings run stopped: {summary}; files: {', '.join(shown)}{more}")

    def _handle_batch_failure(
        self, state: _FileState, batch: List[_PendingChunk], failure: ProviderFailure
    ) -> None:
        error = failure.error
        indices = {item.chunk.index for item in batch}

        if isinstance(failure, (FatalFailure, CooldownFailure, ContentBlockedFailure)):
            state.unsent_indices.update(indices)
            self._halt(error, [state.path])
            return

        if isinstance(failure, UnknownFailure):
            state.failed_indices.update(indices)
            self._transient_error_count += 1
            self._mark_failed(
                state.path,
                FailedProcessingDetail(
                    code=error.code.value,
                    message=error.message,
                    status=error.status,
                    retry_in_ms=error.retry_in_ms,
                ),
            )
            logger.warning(
                f"Transient embeddings failure {self._transient_error_count}/{self._config.max_transient_errors} "
                f"for {state.path}: {error.message}"
            )

            if self._transient_error_count >= self._config.max_transient_errors:
                aggregate = EmbeddingsProviderError(
                    f"Too many transient errors ({self._transient_error_count}); stopping embeddings run",
                    code=ProviderErrorCode.UNEXPECTED_RESPONSE,
                    transient=False,
                    provider_id=self._provider_id(),
                    details={
                        "transient_error_count": self._transient_error_count,
                        "last_error_code": error.code.value,
                    },
                    cause=error,
                )
                self._halt(aggregate, list(self._failed_paths))

    # Reconciliation -------------------------------------------------------

    async def _finalize_file(self, state: _FileState) -> None:
        """Mark root completeness and delete vectors outside the keep-set."""
        namespace = state.namespace or self._known_namespace()
        if namespace is None:
            logger.debug(f"{state.path}: no namespace known yet, skipping reconciliation")
            return

        complete = not state.failed_indices and not state.unsent_indices
        root = self.storage.get_vector_sync(build_vector_id(namespace, state.path, 0))
        if root is not None:
            metadata = root.metadata
            if (
                metadata.complete != complete
                or metadata.chunk_count != state.chunk_count
                or metadata.title != state.title
                or (state.mtime is not None and metadata.mtime != state.mtime)
            ):
                await self.storage.store_vectors([
                    root.with_metadata(
                        complete=complete,
                        chunk_count=state.chunk_count,
                        title=state.title,
                        mtime=state.mtime if state.mtime is not None else metadata.mtime,
                    )
                ])

        keep_ids = {build_vector_id(namespace, state.path, index) for index in state.keep_indices()}
        removed = await self.storage.remove_by_path_except_ids(state.path, namespace, keep_ids)
        if removed:
            logger.debug(f"{state.path}: removed {removed} stale vectors")

        if not state.unsent_indices and state.path not in self._failed_paths:
            self._completed += 1
