from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rerank.RerankClientManager import RerankClientManager
from shared.helper.DocumentLockRegistry import DocumentLockRegistry
from shared.helper.HelperConfig import HelperConfig
from shared.store.ChunkStoreInterface import ChunkStoreInterface
from shared.store.sqlalchemy.ChunkStoreSqlAlchemy import ChunkStoreSqlAlchemy
from services.ingestion.IngestionService import IngestionService
from services.retrieval.SearchService import SearchService


class RagRuntime:
    """Wires the configured clients, the chunk store and both services together.

    Usage::

        async with RagRuntime(helper_config) as runtime:
            await runtime.search_service.search("dosage of ibuprofen")
    """

    def __init__(self, helper_config: HelperConfig, chunk_store: ChunkStoreInterface | None = None) -> None:
        self.logging = helper_config.get_logger()
        self.helper_config = helper_config

        self.embed_client = EmbedClientManager(helper_config).get_client()
        self.rag_client = RAGClientManager(helper_config).get_client()
        # reranking is optional, search keeps the fused order without it
        self.rerank_client = None
        if helper_config.get_string_val("RERANK_ENGINE", default=""):
            self.rerank_client = RerankClientManager(helper_config).get_client()
        else:
            self.logging.warning("RERANK_ENGINE not set, search results will not be reranked.")

        self.chunk_store = chunk_store or ChunkStoreSqlAlchemy(helper_config)
        self.ingestion_service = IngestionService(
            helper_config=helper_config,
            chunk_store=self.chunk_store,
            embed_client=self.embed_client,
            rag_client=self.rag_client,
            lock_registry=DocumentLockRegistry(),
        )
        self.search_service = SearchService(
            helper_config=helper_config,
            chunk_store=self.chunk_store,
            embed_client=self.embed_client,
            rag_client=self.rag_client,
            rerank_client=self.rerank_client,
        )

    def _clients(self) -> list[ClientInterface]:
        return [client for client in (self.embed_client, self.rag_client, self.rerank_client) if client is not None]

    async def boot(self) -> None:
        """Boot all clients, verify their backends and prepare index and tables.

        Raises:
            Exception: If a backend is unreachable.
        """
        for client in self._clients():
            await client.boot()
            await client.do_healthcheck()
        await self.rag_client.do_ensure_index(self.embed_client.output_dimension)
        await self.chunk_store.create_all()
        self.logging.info("RAG runtime booted.")

    async def close(self) -> None:
        """Wait for background ingestions, then release clients and connections."""
        await self.ingestion_service.drain()
        for client in self._clients():
            await client.close()
        await self.chunk_store.close()

    async def __aenter__(self) -> "RagRuntime":
        await self.boot()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
