import asyncio

from services.runtime.RagRuntime import RagRuntime
from shared.clients.embed.voyage.EmbedClientVoyage import EmbedClientVoyage
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.clients.rerank.voyage.RerankClientVoyage import RerankClientVoyage


def _configure(monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "voyage")
    monkeypatch.setenv("EMBED_MODEL", "voyage-3-large")
    monkeypatch.setenv("EMBED_VOYAGE_API_KEYS", "[k1]")
    monkeypatch.setenv("RAG_ENGINE", "qdrant")
    monkeypatch.setenv("RAG_QDRANT_BASE_URL", "http://qdrant:6333")
    monkeypatch.setenv("RAG_QDRANT_COLLECTION", "medical")


def test_runtime_wires_configured_engines(monkeypatch, helper_config, store):
    _configure(monkeypatch)
    monkeypatch.setenv("RERANK_ENGINE", "voyage")
    monkeypatch.setenv("RERANK_VOYAGE_API_KEYS", "[k1]")

    runtime = RagRuntime(helper_config, chunk_store=store)

    assert isinstance(runtime.embed_client, EmbedClientVoyage)
    assert isinstance(runtime.rag_client, RAGClientQdrant)
    assert isinstance(runtime.rerank_client, RerankClientVoyage)
    assert runtime.ingestion_service is not None
    asyncio.run(runtime.close())


def test_runtime_without_reranker(monkeypatch, helper_config, store):
    _configure(monkeypatch)
    monkeypatch.delenv("RERANK_ENGINE", raising=False)

    runtime = RagRuntime(helper_config, chunk_store=store)

    assert runtime.rerank_client is None
    assert len(runtime._clients()) == 2
