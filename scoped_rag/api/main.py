"""FastAPI application: scoped retrieval over HTTP."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from scoped_rag.pipelines.ingest import DEMO_CORPUS, load_corpus
from scoped_rag.pipelines.models import Document
from scoped_rag.pipelines.providers import RegistryMetadataProvider
from scoped_rag.retrieval.index import DocumentIndex
from scoped_rag.retrieval.orchestrator import OrchestratorError, ScopedRetriever

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class QueryRequest(BaseModel):
    query: str
    context: dict[str, str] = Field(default_factory=dict)


class QueryResponse(BaseModel):
    query: str
    documents: list[Document]
    denied_count: int


class DocumentsRequest(BaseModel):
    context: dict[str, str] = Field(default_factory=dict)


class DocumentsResponse(BaseModel):
    identifiers: list[str]


def build_demo_retriever() -> ScopedRetriever:
    index = DocumentIndex()
    load_corpus(RegistryMetadataProvider(DEMO_CORPUS), index)
    return ScopedRetriever(index)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(retriever: ScopedRetriever | None = None) -> FastAPI:
    app = FastAPI(title="Scoped RAG API", version="0.1.0")
    app.state.retriever = retriever if retriever is not None else build_demo_retriever()

    def _retriever() -> ScopedRetriever:
        return app.state.retriever

    @app.get("/health")
    async def health_check() -> dict:
        index = _retriever().index
        return {"status": "ok", "loaded": index.loaded, "documents": len(index)}

    @app.post("/api/query", response_model=QueryResponse)
    async def query_documents(req: QueryRequest) -> QueryResponse:
        try:
            result = _retriever().retrieve_with_audit(req.query, req.context)
        except OrchestratorError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return QueryResponse(
            query=result.query, documents=result.documents, denied_count=len(result.denied)
        )

    @app.post("/api/documents", response_model=DocumentsResponse)
    async def list_documents(req: DocumentsRequest) -> DocumentsResponse:
        try:
            documents = _retriever().retrieve("", req.context)
        except OrchestratorError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return DocumentsResponse(identifiers=[doc.identifier for doc in documents])

    return app


app = create_app()
