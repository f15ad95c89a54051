"""
Pydantic schemas shared by ingestion, policy evaluation and retrieval.

Document: one indexed document (identifier, content, attribute mapping).
IndexEntry: a Document plus its embedding, as stored in the DocumentIndex.
Decision: outcome of a single policy check (ALLOW / DENY / NO_OPINION).
PolicyVerdict, CheckResult: the audit trail of one policy evaluation.
LoadFailure, LoadReport: per-document outcome of a corpus load.

All models that cross the index boundary are frozen: once a Document is
indexed its identifier, content and attributes never change. Re-indexing
builds a new Document and replaces the entry wholesale.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str = Field(..., description="Unique, stable id, e.g. the file path")
    content: str = Field(default="", description="Full text of the document")
    attributes: Mapping[str, str] = Field(
        default_factory=dict, description="Attribute key → value (namespace prefix stripped)"
    )

    @field_validator("attributes", mode="after")
    @classmethod
    def _read_only_attributes(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        # Read-only view over a private copy.
        return MappingProxyType(dict(value))

    @field_serializer("attributes")
    def _serialize_attributes(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    @property
    def name(self) -> str:
        """Last path component of the identifier, used in logs and prompt blocks."""
        return self.identifier.rstrip("/").rsplit("/", 1)[-1]

    def isolated(self) -> Document:
        """Return a copy with its own attribute mapping."""
        return Document(
            identifier=self.identifier,
            content=self.content,
            attributes=dict(self.attributes),
        )


class IndexEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    document: Document
    embedding: tuple[float, ...]


# ---------------------------------------------------------------------------
# Policy evaluation
# ---------------------------------------------------------------------------


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    NO_OPINION = "no_opinion"


class CheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    check: str
    decision: Decision
    reason: str = ""


class PolicyVerdict(BaseModel):
    """Outcome of running every applicable check against one document."""

    model_config = ConfigDict(frozen=True)

    admitted: bool
    denied_by: str | None = Field(None, description="Name of the check that vetoed, if any")
    results: tuple[CheckResult, ...] = ()

    @property
    def reason(self) -> str:
        if self.admitted:
            return "passed all checks"
        for result in self.results:
            if result.decision is Decision.DENY:
                return result.reason
        return "denied"


# ---------------------------------------------------------------------------
# Corpus loading
# ---------------------------------------------------------------------------

LoadStage = Literal["content", "attributes", "embedding"]


class LoadFailure(BaseModel):
    identifier: str
    stage: LoadStage
    error: str


class LoadReport(BaseModel):
    """Batch result of a corpus load. Failures never abort the load."""

    indexed: list[str] = Field(default_factory=list)
    failures: list[LoadFailure] = Field(default_factory=list)
    degraded: list[str] = Field(
        default_factory=list,
        description="Documents indexed with empty attributes because the provider failed",
    )

    @property
    def ok(self) -> bool:
        return not self.failures
