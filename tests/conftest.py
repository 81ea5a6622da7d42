import logging
import uuid
from datetime import datetime, timezone

import pytest

from shared.clients.embed.EmbedClientInterface import EmbedMode
from shared.clients.rag.models.VectorPoint import ChildHit, SearchFilter, VectorEntry
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import (
    ChildChunkLink,
    ChunkStatus,
    Document,
    DocumentType,
    ParentChunk,
)
from shared.models.search import RerankResult
from shared.store.ChunkStoreInterface import ChunkStoreInterface


##########################################
################ FAKES ###################
##########################################

class FakeEmbedClient:
    """Returns one two-dimensional vector per text. Texts containing fail_marker raise."""

    def __init__(self, fail_marker: str | None = None):
        self.output_dimension = 2
        self.fail_marker = fail_marker
        self.calls: list[tuple[list[str], EmbedMode]] = []

    async def do_embed(self, texts, mode=EmbedMode.DOCUMENT, output_dimension=None):
        texts = [texts] if isinstance(texts, str) else list(texts)
        self.calls.append((texts, mode))
        if self.fail_marker and any(self.fail_marker in text for text in texts):
            raise RuntimeError("embedding backend rejected the batch")
        return [[float(len(text)), 1.0] for text in texts]


class FakeRagClient:
    """Keeps upserted vectors in a dict and answers queries with preset hits."""

    def __init__(self):
        self.vectors: dict[str, VectorEntry] = {}
        self.upsert_calls: list[list[str]] = []
        self.deleted: list[str] = []
        self.query_hits: list[ChildHit] = []
        self.query_error: Exception | None = None
        self.query_calls: list[tuple[int, SearchFilter | None]] = []

    async def do_upsert(self, entries):
        self.upsert_calls.append([entry.id for entry in entries])
        for entry in entries:
            self.vectors[entry.id] = entry

    async def do_delete_many(self, ids):
        self.deleted.extend(ids)
        for vector_key in ids:
            self.vectors.pop(vector_key, None)

    async def do_query(self, vector, top_k, search_filter=None, include_metadata=True):
        self.query_calls.append((top_k, search_filter))
        if self.query_error is not None:
            raise self.query_error
        return self.query_hits[:top_k]


class FakeRerankClient:
    def __init__(self, results: list[RerankResult] | None = None):
        self.results = results or []
        self.calls: list[tuple[str, list[str], int | None]] = []

    async def do_rerank(self, query, documents, top_k=None):
        self.calls.append((query, list(documents), top_k))
        return list(self.results)


class InMemoryChunkStore(ChunkStoreInterface):
    """Dict backed chunk store. Counts writes so tests can assert idempotence."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.documents: dict[str, Document] = {}
        self.parents: dict[str, ParentChunk] = {}
        self.links: list[ChildChunkLink] = []
        self.writes = 0

    async def create_all(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def create_document(self, title, content, type=DocumentType.RAG, rag_subtype=None, patient_id=None, document_id=None):
        self.writes += 1
        document = Document(
            id=document_id or str(uuid.uuid4()),
            title=title,
            content=content,
            type=type,
            rag_subtype=rag_subtype,
            patient_id=patient_id,
            created_at=datetime.now(timezone.utc),
        )
        self.documents[document.id] = document
        return document

    async def get_document(self, document_id):
        return self.documents.get(document_id)

    async def find_documents_by_status(self, statuses):
        return [doc for doc in self.documents.values() if doc.ingestion_status in statuses]

    async def set_ingestion_status(self, document_id, status):
        if document_id not in self.documents:
            raise LookupError(document_id)
        self.writes += 1
        self.documents[document_id] = self.documents[document_id].model_copy(update={"ingestion_status": status})

    async def delete_document(self, document_id):
        self.writes += 1
        await self.delete_parent_chunks(document_id=document_id)
        self.documents.pop(document_id, None)

    async def create_parent_chunk(self, document_id, parent_index, parent_text):
        if any(p.document_id == document_id and p.parent_index == parent_index for p in self.parents.values()):
            raise ValueError("duplicate parent index")
        self.writes += 1
        parent = ParentChunk(id=str(uuid.uuid4()), document_id=document_id, parent_index=parent_index, parent_text=parent_text)
        self.parents[parent.id] = parent
        return parent

    async def mark_parent_chunk_active(self, parent_chunk_id):
        self.writes += 1
        self.parents[parent_chunk_id] = self.parents[parent_chunk_id].model_copy(update={"status": ChunkStatus.ACTIVE})

    async def find_parent_chunks(self, document_id, status=None):
        found = [p for p in self.parents.values() if p.document_id == document_id and (status is None or p.status == status)]
        return sorted(found, key=lambda p: p.parent_index)

    async def delete_parent_chunks(self, document_id=None, ids=None):
        if ids is None:
            ids = [p.id for p in self.parents.values() if p.document_id == document_id]
        if not ids:
            return 0
        self.writes += 1
        self.links = [link for link in self.links if link.parent_chunk_id not in ids]
        for parent_id in ids:
            self.parents.pop(parent_id, None)
        return len(ids)

    async def find_parent_texts(self, ids):
        return {pid: self.parents[pid].parent_text for pid in ids if pid in self.parents and self.parents[pid].status == ChunkStatus.ACTIVE}

    async def create_child_links(self, links):
        self.writes += 1
        self.links.extend(links)

    async def find_child_links(self, document_id=None, parent_chunk_ids=None):
        return [
            link for link in self.links
            if (document_id is None or link.document_id == document_id)
            and (parent_chunk_ids is None or link.parent_chunk_id in parent_chunk_ids)
        ]

    async def count_chunks(self, document_id):
        parents = sum(1 for p in self.parents.values() if p.document_id == document_id)
        links = sum(1 for link in self.links if link.document_id == document_id)
        return parents, links

    def add_active_parent(self, document_id: str, parent_index: int, text: str) -> ParentChunk:
        parent = ParentChunk(
            id=str(uuid.uuid4()),
            document_id=document_id,
            parent_index=parent_index,
            parent_text=text,
            status=ChunkStatus.ACTIVE,
        )
        self.parents[parent.id] = parent
        return parent


##########################################
############### FIXTURES #################
##########################################

@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=logging.getLogger("rag_engine.tests"))


@pytest.fixture
def store(helper_config) -> InMemoryChunkStore:
    return InMemoryChunkStore(helper_config)


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def rag_client() -> FakeRagClient:
    return FakeRagClient()


@pytest.fixture
def rerank_client() -> FakeRerankClient:
    return FakeRerankClient()

