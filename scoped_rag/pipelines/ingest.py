"""
Scoped RAG: corpus loading and query CLI
========================================

Stage 1:  MetadataProvider   (identifier → content + attributes)
Stage 2:  EmbeddingProvider  (content + attributes → vector)
Stage 3:  DocumentIndex.put  (one entry per document)

Per-document failures are collected in a LoadReport; the load itself never
aborts because one document could not be read or embedded.

CLI usage:
    python -m scoped_rag.pipelines.ingest --demo
    python -m scoped_rag.pipelines.ingest --demo --query "IT policy?" \
        --context user_id=123 --context department=IT
    python -m scoped_rag.pipelines.ingest --data-dir ./corpus --seed --show-prompt
    python -m scoped_rag.pipelines.ingest --data-dir ./corpus --strict-attributes --query "notes"
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from scoped_rag.config import settings
from scoped_rag.pipelines.consumer import build_prompt_context
from scoped_rag.pipelines.embeddings import EmbeddingProvider, get_embedding_provider
from scoped_rag.pipelines.models import Document, IndexEntry, LoadFailure, LoadReport
from scoped_rag.pipelines.providers import (
    MetadataProvider,
    ProviderError,
    RegistryMetadataProvider,
    XattrMetadataProvider,
    check_xattr_support,
    write_document,
)
from scoped_rag.retrieval.index import DocumentIndex
from scoped_rag.retrieval.orchestrator import ScopedRetriever

logger = logging.getLogger("ingest")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Demo corpus
# Maps file name → content and attributes. Used by --demo and --seed.
# ---------------------------------------------------------------------------

DEMO_CORPUS: dict[str, dict] = {
    "public_announcement.txt": {
        "content": "This is a public announcement about upcoming office changes.",
        "attributes": {"type": "public", "published_by": "HR"},
    },
    "user_123_personal_notes.txt": {
        "content": "My personal notes about project Alpha. Do not share.",
        "attributes": {"user_id": "123", "sensitivity": "confidential", "location": "New York"},
    },
    "internal_dev_report.txt": {
        "content": "Internal development report for Q3. Access restricted to Dev department.",
        "attributes": {"user_id": "456", "department": "Dev", "sensitivity": "internal"},
    },
    "it_security_policy.txt": {
        "content": "Official IT security policy. For IT department only.",
        "attributes": {"user_id": "123", "department": "IT", "sensitivity": "confidential"},
    },
}

DEMO_QUERIES: list[tuple[str, dict[str, str]]] = [
    ("What are my project notes?", {"user_id": "123", "location": "New York"}),
    ("Show me my personal notes.", {"user_id": "456", "location": "London"}),
    ("Tell me about office changes.", {}),
    (
        "What's the IT security policy?",
        {"user_id": "123", "department": "IT", "location": "New York"},
    ),
    (
        "What's the IT security policy?",
        {"user_id": "456", "department": "Dev", "location": "London"},
    ),
    ("Latest development report.", {"user_id": "456", "department": "Dev", "location": "London"}),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _call_provider(fn: Callable[..., T], *args: object, timeout: float | None) -> T:
    """Invoke a provider call, giving up after timeout seconds when one is set."""
    if timeout is None:
        return fn(*args)
    # One executor per call: a hung call keeps its worker thread.
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        return executor.submit(fn, *args).result(timeout=timeout)
    except FutureTimeoutError as exc:
        name = getattr(fn, "__name__", "provider call")
        raise ProviderError(f"{name} timed out after {timeout}s") from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _load_one(
    identifier: str,
    provider: MetadataProvider,
    embedder: EmbeddingProvider,
    report: LoadReport,
    strict_attributes: bool,
    timeout: float | None,
) -> IndexEntry | None:
    try:
        content = _call_provider(provider.read_content, identifier, timeout=timeout)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[INGEST] %s: content unreadable, skipping (%s)", identifier, exc)
        report.failures.append(LoadFailure(identifier=identifier, stage="content", error=str(exc)))
        return None

    try:
        attributes = _call_provider(provider.list_attributes, identifier, timeout=timeout)
    except Exception as exc:  # noqa: BLE001
        if strict_attributes:
            logger.warning("[INGEST] %s: attributes unreadable, skipping (%s)", identifier, exc)
            report.failures.append(
                LoadFailure(identifier=identifier, stage="attributes", error=str(exc))
            )
            return None
        logger.warning(
            "[INGEST] %s: attributes unreadable, indexing with none (%s)", identifier, exc
        )
        report.degraded.append(identifier)
        attributes = {}

    try:
        document = Document(identifier=identifier, content=content, attributes=attributes)
    except ValidationError as exc:
        logger.warning("[INGEST] %s: malformed content or attributes, skipping", identifier)
        failure = LoadFailure(identifier=identifier, stage="attributes", error=str(exc))
        report.failures.append(failure)
        return None

    try:
        vector = _call_provider(
            embedder.embed, document.content, document.attributes, timeout=timeout
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("[INGEST] %s: embedding failed, skipping (%s)", identifier, exc)
        failure = LoadFailure(identifier=identifier, stage="embedding", error=str(exc))
        report.failures.append(failure)
        return None

    if len(vector) != embedder.dimension:
        error = f"embedding has {len(vector)} dims, expected {embedder.dimension}"
        logger.warning("[INGEST] %s: %s, skipping", identifier, error)
        report.failures.append(LoadFailure(identifier=identifier, stage="embedding", error=error))
        return None

    return IndexEntry(document=document, embedding=tuple(vector))


# ---------------------------------------------------------------------------
# Core pipeline
# ---------------------------------------------------------------------------


def load_corpus(
    provider: MetadataProvider,
    index: DocumentIndex,
    embedder: EmbeddingProvider | None = None,
    identifiers: Iterable[str] | None = None,
    rebuild: bool = False,
    strict_attributes: bool | None = None,
    timeout: float | None = None,
) -> LoadReport:
    """
    Read, embed and index every document the provider lists (or only identifiers).

    rebuild=True swaps the whole index for the newly loaded set in one step;
    otherwise each document is put individually and existing entries for other
    identifiers are kept. The index is marked loaded in both cases.
    """
    embedder = embedder or get_embedding_provider()
    strict = settings.strict_attributes if strict_attributes is None else strict_attributes
    timeout = settings.provider_timeout_s if timeout is None else timeout
    ids = list(identifiers) if identifiers is not None else provider.list_identifiers()

    logger.info(
        "=== Corpus load ===  provider=%s  docs=%d  strict_attributes=%s",
        type(provider).__name__,
        len(ids),
        strict,
    )

    report = LoadReport()
    entries: list[IndexEntry] = []
    for identifier in ids:
        entry = _load_one(identifier, provider, embedder, report, strict, timeout)
        if entry is None:
            continue
        report.indexed.append(identifier)
        if rebuild:
            entries.append(entry)
        else:
            index.put(entry.document, entry.embedding)

    if rebuild:
        index.replace_all(entries)
    else:
        index.mark_loaded()

    logger.info(
        "=== Load complete: %d indexed, %d failed, %d degraded ===",
        len(report.indexed),
        len(report.failures),
        len(report.degraded),
    )
    return report


def run_query(
    retriever: ScopedRetriever, query: str, context: dict[str, str], show_prompt: bool = False
) -> list[Document]:
    result = retriever.retrieve_with_audit(query, context)
    logger.info("--- Query: %r  context: %s ---", query, context)
    for decision in result.decisions:
        status = "INCLUDED" if decision.verdict.admitted else f"skipped ({decision.verdict.reason})"
        logger.info("  %-40s %s", Path(decision.identifier).name, status)
    if show_prompt:
        print(build_prompt_context(query, result.documents))
    return result.documents


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _parse_context(pairs: list[str]) -> dict[str, str]:
    context: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"--context expects key=value, got {pair!r}")
        context[key.strip()] = value.strip()
    return context


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="scoped-rag",
        description="Load an attribute-annotated corpus and run access-scoped queries.",
    )
    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument("--data-dir", type=Path, help="Directory of files carrying user.* xattrs.")
    source.add_argument("--demo", action="store_true", help="Use the built-in in-memory corpus.")
    p.add_argument(
        "--seed",
        action="store_true",
        help="Write the demo corpus (with xattrs) into --data-dir before loading.",
    )
    p.add_argument("--query", help="Query to run. Without it the demo scenarios are run.")
    p.add_argument(
        "--context",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Requester context claim; repeatable.",
    )
    p.add_argument("--show-prompt", action="store_true", help="Print the assembled prompt context.")
    p.add_argument(
        "--strict-attributes",
        action="store_true",
        help="Skip documents whose attributes cannot be read instead of indexing them bare.",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        context = _parse_context(args.context)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    if args.seed and args.demo:
        parser.error("--seed writes files and needs --data-dir, not --demo")

    if args.demo:
        provider: MetadataProvider = RegistryMetadataProvider(DEMO_CORPUS)
    else:
        if args.seed:
            args.data_dir.mkdir(parents=True, exist_ok=True)
        if not args.data_dir.is_dir():
            logger.error("--data-dir '%s' does not exist.", args.data_dir)
            sys.exit(1)
        if not check_xattr_support(args.data_dir):
            logger.error("Filesystem at '%s' does not support user xattrs.", args.data_dir)
            sys.exit(1)
        if args.seed:
            for name, record in DEMO_CORPUS.items():
                write_document(args.data_dir / name, record["content"], record["attributes"])
            logger.info("Seeded %d demo documents into '%s'.", len(DEMO_CORPUS), args.data_dir)
        provider = XattrMetadataProvider(args.data_dir)

    index = DocumentIndex()
    report = load_corpus(provider, index, strict_attributes=args.strict_attributes or None)
    for failure in report.failures:
        logger.warning(
            "FAILED %-40s stage=%s  %s", failure.identifier, failure.stage, failure.error
        )

    retriever = ScopedRetriever(index)
    queries = [(args.query, context)] if args.query else DEMO_QUERIES
    for query, query_context in queries:
        run_query(retriever, query, query_context, show_prompt=args.show_prompt)


if __name__ == "__main__":
    main()
