"""
Metadata providers: the storage side of corpus loading.

A MetadataProvider answers three questions for the ingest pipeline:
which documents exist, what is their text, and what attributes are attached
to them. Two implementations ship here:

  XattrMetadataProvider     files in a directory, attributes stored as Linux
                            extended attributes under the "user." namespace
  RegistryMetadataProvider  an in-memory registry (demo corpus, tests)

Providers raise ProviderError for anything they cannot read; deciding whether
a failure skips the document or degrades it is the ingest pipeline's job.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path

from scoped_rag.config import settings
from scoped_rag.pipelines.loaders import is_supported, load_text

logger = logging.getLogger(__name__)

_XATTR_PROBE_NAME = "temp_xattr_test.txt"


class ProviderError(Exception):
    """Raised when a provider cannot read content or attributes for a document."""


class MetadataProvider(ABC):
    @abstractmethod
    def list_identifiers(self) -> list[str]:
        """Return every document identifier the provider knows, in stable order."""

    @abstractmethod
    def read_content(self, identifier: str) -> str:
        """Return the text content of one document."""

    @abstractmethod
    def list_attributes(self, identifier: str) -> dict[str, str]:
        """Return the attribute mapping of one document."""


# ---------------------------------------------------------------------------
# Extended-attribute backed provider
# ---------------------------------------------------------------------------


def _require_xattr() -> None:
    if not hasattr(os, "listxattr"):
        raise ProviderError("extended attributes are not available on this platform")


def _namespaced(key: str, namespace: str) -> str:
    return key if key.startswith(namespace) else namespace + key


def write_document(
    filepath: str | Path,
    content: str,
    attributes: Mapping[str, str],
    namespace: str | None = None,
) -> Path:
    """
    Write content to filepath and attach each attribute as an extended attribute.

    Keys without the namespace prefix get it added ("sensitivity" → "user.sensitivity").
    """
    _require_xattr()
    namespace = namespace if namespace is not None else settings.attribute_namespace
    path = Path(filepath)
    path.write_text(content, encoding="utf-8")

    for key, value in attributes.items():
        xattr_key = _namespaced(key, namespace)
        try:
            os.setxattr(path, xattr_key, value.encode("utf-8"))
        except OSError as exc:
            raise ProviderError(f"failed to set xattr {xattr_key} on {path}: {exc}") from exc
    return path


def check_xattr_support(directory: str | Path) -> bool:
    """Probe whether the filesystem under directory supports user xattrs."""
    if not hasattr(os, "listxattr"):
        logger.warning("Extended attributes are not available on this platform.")
        return False

    probe = Path(directory) / _XATTR_PROBE_NAME
    key, value = "user.test.xattr", b"testvalue"
    try:
        probe.write_bytes(b"test")
    except OSError as exc:
        logger.warning("Could not create probe file for xattr test: %s", exc)
        return False

    try:
        try:
            os.setxattr(probe, key, value)
            retrieved = os.getxattr(probe, key)
        except OSError as exc:
            logger.warning("Filesystem at '%s' does not support xattr: %s", directory, exc)
            return False
        if retrieved != value:
            logger.warning("xattr round trip mismatch on '%s'.", directory)
            return False
        return True
    finally:
        probe.unlink(missing_ok=True)


class XattrMetadataProvider(MetadataProvider):
    """Documents are the supported files directly under root."""

    def __init__(self, root: str | Path, namespace: str | None = None) -> None:
        self.root = Path(root)
        self.namespace = namespace if namespace is not None else settings.attribute_namespace

    def list_identifiers(self) -> list[str]:
        if not self.root.is_dir():
            raise ProviderError(f"corpus directory does not exist: {self.root}")
        return [
            str(path)
            for path in sorted(self.root.iterdir())
            if path.is_file() and path.name != _XATTR_PROBE_NAME and is_supported(path)
        ]

    def read_content(self, identifier: str) -> str:
        try:
            return load_text(identifier)
        except Exception as exc:  # noqa: BLE001
            # pypdf and python-docx raise their own parser errors for corrupt files
            raise ProviderError(f"failed to read content of {identifier}: {exc}") from exc

    def list_attributes(self, identifier: str) -> dict[str, str]:
        _require_xattr()
        try:
            keys = os.listxattr(identifier)
        except OSError as exc:
            raise ProviderError(f"failed to list xattrs for {identifier}: {exc}") from exc

        attributes: dict[str, str] = {}
        for key in sorted(keys):
            if not key.startswith(self.namespace):
                continue
            try:
                raw = os.getxattr(identifier, key)
            except OSError as exc:
                raise ProviderError(f"failed to get xattr {key!r} for {identifier}: {exc}") from exc
            attributes[key[len(self.namespace) :]] = raw.decode("utf-8", errors="replace")
        return attributes


# ---------------------------------------------------------------------------
# In-memory registry provider
# ---------------------------------------------------------------------------


class RegistryMetadataProvider(MetadataProvider):
    """
    Registry maps identifier → {"content": str, "attributes": {key: value}}.

    Entries are copied on construction; later edits to the source mapping are not seen.
    """

    def __init__(self, records: Mapping[str, Mapping[str, object]]) -> None:
        self._records: dict[str, dict[str, object]] = {
            identifier: {
                "content": str(record.get("content", "")),
                "attributes": dict(record.get("attributes") or {}),  # type: ignore[call-overload]
            }
            for identifier, record in records.items()
        }

    def _record(self, identifier: str) -> dict[str, object]:
        record = self._records.get(identifier)
        if record is None:
            raise ProviderError(f"unknown document: {identifier}")
        return record

    def list_identifiers(self) -> list[str]:
        return list(self._records)

    def read_content(self, identifier: str) -> str:
        return self._record(identifier)["content"]  # type: ignore[return-value]

    def list_attributes(self, identifier: str) -> dict[str, str]:
        attributes = dict(self._record(identifier)["attributes"])  # type: ignore[call-overload]
        for key, value in attributes.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ProviderError(
                    f"attribute {key!r} of {identifier} is not a string pair: {value!r}"
                )
        return attributes
