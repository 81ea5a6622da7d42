import asyncio

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine

from shared.models.document import (
    ChildChunkLink,
    ChunkStatus,
    DocumentType,
    IngestionStatus,
    RagSubtype,
)
from shared.store.sqlalchemy.ChunkStoreSqlAlchemy import ChunkStoreSqlAlchemy


@pytest.fixture
def sql_store(helper_config, tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'chunks.db'}")
    return ChunkStoreSqlAlchemy(helper_config, engine=engine)


def _run(store, scenario):
    async def _wrapped():
        await store.create_all()
        try:
            return await scenario(store)
        finally:
            await store.close()

    return asyncio.run(_wrapped())


def test_document_lifecycle(sql_store):
    async def scenario(store):
        doc = await store.create_document("Malaria", "# Malaria\nfever", rag_subtype=RagSubtype.DISEASE)
        assert doc.ingestion_status == IngestionStatus.NOT_STARTED
        assert doc.type == DocumentType.RAG

        await store.set_ingestion_status(doc.id, IngestionStatus.PARTIAL)
        partial = await store.find_documents_by_status([IngestionStatus.PARTIAL])
        assert [d.id for d in partial] == [doc.id]
        assert not partial[0].is_ingested

        await store.delete_document(doc.id)
        assert await store.get_document(doc.id) is None

    _run(sql_store, scenario)


def test_unknown_document_status_update_raises(sql_store):
    async def scenario(store):
        with pytest.raises(LookupError):
            await store.set_ingestion_status("missing", IngestionStatus.COMPLETE)

    _run(sql_store, scenario)


def test_parent_texts_only_for_active_parents(sql_store):
    async def scenario(store):
        doc = await store.create_document("Aspirin", "text")
        parent = await store.create_parent_chunk(doc.id, 0, "# Aspirin\nTake with water.")
        assert parent.status == ChunkStatus.PENDING
        assert await store.find_parent_texts([parent.id, "", "unknown"]) == {}

        await store.mark_parent_chunk_active(parent.id)
        assert await store.find_parent_texts([parent.id, "unknown"]) == {parent.id: "# Aspirin\nTake with water."}
        assert [p.id for p in await store.find_parent_chunks(doc.id, status=ChunkStatus.ACTIVE)] == [parent.id]

    _run(sql_store, scenario)


def test_child_links_follow_parent_deletion(sql_store):
    async def scenario(store):
        doc = await store.create_document("Aspirin", "text")
        first = await store.create_parent_chunk(doc.id, 0, "first")
        second = await store.create_parent_chunk(doc.id, 1, "second")
        await store.create_child_links([
            ChildChunkLink(document_id=doc.id, parent_chunk_id=second.id, chunk_index=1000, chunk_text="second", vector_key=f"{doc.id}_parent1_child0"),
            ChildChunkLink(document_id=doc.id, parent_chunk_id=first.id, chunk_index=0, chunk_text="first", vector_key=f"{doc.id}_parent0_child0"),
        ])

        links = await store.find_child_links(document_id=doc.id)
        assert [link.chunk_index for link in links] == [0, 1000]
        assert await store.count_chunks(doc.id) == (2, 2)

        assert await store.delete_parent_chunks(ids=[first.id]) == 1
        assert await store.count_chunks(doc.id) == (1, 1)
        assert await store.find_child_links(parent_chunk_ids=[]) == []

        assert await store.delete_parent_chunks(document_id=doc.id) == 1
        assert await store.count_chunks(doc.id) == (0, 0)

    _run(sql_store, scenario)


def test_parent_index_is_unique_per_document(sql_store):
    async def scenario(store):
        doc = await store.create_document("Aspirin", "text")
        await store.create_parent_chunk(doc.id, 0, "first")
        with pytest.raises(IntegrityError):
            await store.create_parent_chunk(doc.id, 0, "again")

    _run(sql_store, scenario)


def test_delete_parent_chunks_requires_a_scope(sql_store):
    async def scenario(store):
        with pytest.raises(ValueError):
            await store.delete_parent_chunks()

    _run(sql_store, scenario)
