"""
Scoped retrieval: enumerate the index, apply the policy filter, hand back
only the documents the requester may see.

Architecture:
  DocumentIndex.enumerate() → PolicyFilter.evaluate() per entry → admitted Documents

No ranking is performed yet. The query is accepted so a similarity stage can
slot in later; today it is only logged. Admitted documents come back in index
enumeration order, so repeated calls against an unchanged index return the
same list.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, Field

from scoped_rag.pipelines.models import Document, PolicyVerdict
from scoped_rag.retrieval.index import DocumentIndex
from scoped_rag.retrieval.policy import PolicyFilter, build_policy_filter

logger = logging.getLogger(__name__)


class OrchestratorError(Exception):
    """The index is not in a state that can answer queries (e.g. never loaded)."""


class DocumentDecision(BaseModel):
    identifier: str
    verdict: PolicyVerdict


class RetrievalResult(BaseModel):
    query: str
    documents: list[Document] = Field(default_factory=list)
    decisions: list[DocumentDecision] = Field(default_factory=list)

    @property
    def denied(self) -> list[DocumentDecision]:
        return [d for d in self.decisions if not d.verdict.admitted]


class ScopedRetriever:
    def __init__(self, index: DocumentIndex, policy: PolicyFilter | None = None) -> None:
        self._index = index
        self._policy = policy if policy is not None else build_policy_filter()

    @property
    def index(self) -> DocumentIndex:
        return self._index

    @property
    def policy(self) -> PolicyFilter:
        return self._policy

    def retrieve(self, query: str, context: Mapping[str, str]) -> list[Document]:
        """Return the documents the requester described by context may see."""
        return self.retrieve_with_audit(query, context).documents

    def retrieve_with_audit(self, query: str, context: Mapping[str, str]) -> RetrievalResult:
        """Like retrieve(), but also return the policy verdict for every document checked."""
        if not self._index.loaded:
            raise OrchestratorError("document index has not been loaded")

        frozen_context = MappingProxyType(dict(context))
        entries = self._index.enumerate()
        logger.info(
            "[RETRIEVE] query=%.80r context_keys=%s candidates=%d",
            query,
            sorted(frozen_context),
            len(entries),
        )

        result = RetrievalResult(query=query)
        for entry in entries:
            document = entry.document
            verdict = self._policy.evaluate(document.attributes, frozen_context)
            decision = DocumentDecision(identifier=document.identifier, verdict=verdict)
            result.decisions.append(decision)
            if verdict.admitted:
                result.documents.append(document)
                logger.debug("[POLICY] included %s", document.name)
            else:
                logger.debug(
                    "[POLICY] skipped %s (%s: %s)", document.name, verdict.denied_by, verdict.reason
                )

        logger.info(
            "[RETRIEVE] admitted %d of %d document(s)", len(result.documents), len(entries)
        )
        return result
