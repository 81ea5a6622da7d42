"""SQLAlchemy async implementation of ChunkStoreInterface.

Every operation runs in its own session so that concurrently processed
parent chunks never share one.
"""

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import (
    ChildChunkLink,
    ChunkStatus,
    Document,
    DocumentType,
    IngestionStatus,
    ParentChunk,
    RagSubtype,
)
from shared.store.ChunkStoreInterface import ChunkStoreInterface
from shared.store.sqlalchemy.orm import Base, DocumentRecord, ParentChunkRecord, RagChunkRecord


class ChunkStoreSqlAlchemy(ChunkStoreInterface):
    def __init__(self, helper_config: HelperConfig, engine: AsyncEngine | None = None):
        super().__init__(helper_config=helper_config)
        self._engine = engine or create_async_engine(
            helper_config.get_string_val("DATABASE_URL"),
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def create_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    async def create_document(
        self,
        title: str,
        content: str,
        type: DocumentType = DocumentType.RAG,
        rag_subtype: RagSubtype | None = None,
        patient_id: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        async with self._session_factory.begin() as session:
            record = DocumentRecord(
                title=title,
                content=content,
                type=type,
                rag_subtype=rag_subtype,
                patient_id=patient_id,
                ingestion_status=IngestionStatus.NOT_STARTED,
            )
            if document_id is not None:
                record.id = document_id
            session.add(record)
            await session.flush()
            return Document.model_validate(record)

    async def get_document(self, document_id: str) -> Document | None:
        async with self._session_factory() as session:
            record = await session.get(DocumentRecord, document_id)
            return Document.model_validate(record) if record else None

    async def find_documents_by_status(self, statuses: list[IngestionStatus]) -> list[Document]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(DocumentRecord)
                .where(DocumentRecord.ingestion_status.in_(statuses))
                .order_by(DocumentRecord.created_at)
            )
            return [Document.model_validate(record) for record in result]

    async def set_ingestion_status(self, document_id: str, status: IngestionStatus) -> None:
        async with self._session_factory.begin() as session:
            record = await session.get(DocumentRecord, document_id)
            if record is None:
                raise LookupError(f"Document {document_id} does not exist.")
            record.ingestion_status = status

    async def delete_document(self, document_id: str) -> None:
        async with self._session_factory.begin() as session:
            await session.execute(delete(RagChunkRecord).where(RagChunkRecord.document_id == document_id))
            await session.execute(delete(ParentChunkRecord).where(ParentChunkRecord.document_id == document_id))
            await session.execute(delete(DocumentRecord).where(DocumentRecord.id == document_id))

    ##########################################
    ############# PARENT CHUNKS ##############
    ##########################################

    async def create_parent_chunk(self, document_id: str, parent_index: int, parent_text: str) -> ParentChunk:
        async with self._session_factory.begin() as session:
            record = ParentChunkRecord(
                document_id=document_id,
                parent_index=parent_index,
                parent_text=parent_text,
                status=ChunkStatus.PENDING,
            )
            session.add(record)
            await session.flush()
            return ParentChunk.model_validate(record)

    async def mark_parent_chunk_active(self, parent_chunk_id: str) -> None:
        async with self._session_factory.begin() as session:
            await session.execute(
                update(ParentChunkRecord)
                .where(ParentChunkRecord.id == parent_chunk_id)
                .values(status=ChunkStatus.ACTIVE)
            )

    async def find_parent_chunks(self, document_id: str, status: ChunkStatus | None = None) -> list[ParentChunk]:
        stmt = select(ParentChunkRecord).where(ParentChunkRecord.document_id == document_id)
        if status is not None:
            stmt = stmt.where(ParentChunkRecord.status == status)
        async with self._session_factory() as session:
            result = await session.scalars(stmt.order_by(ParentChunkRecord.parent_index))
            return [ParentChunk.model_validate(record) for record in result]

    async def delete_parent_chunks(self, document_id: str | None = None, ids: list[str] | None = None) -> int:
        if document_id is None and ids is None:
            raise ValueError("Either document_id or ids is required.")
        if ids is not None and not ids:
            return 0
        async with self._session_factory.begin() as session:
            if ids is not None:
                await session.execute(delete(RagChunkRecord).where(RagChunkRecord.parent_chunk_id.in_(ids)))
                result = await session.execute(delete(ParentChunkRecord).where(ParentChunkRecord.id.in_(ids)))
            else:
                await session.execute(delete(RagChunkRecord).where(RagChunkRecord.document_id == document_id))
                result = await session.execute(delete(ParentChunkRecord).where(ParentChunkRecord.document_id == document_id))
            return result.rowcount or 0

    async def find_parent_texts(self, ids: list[str]) -> dict[str, str]:
        valid_ids = [parent_id for parent_id in ids if parent_id]
        if not valid_ids:
            return {}
        async with self._session_factory() as session:
            rows = await session.execute(
                select(ParentChunkRecord.id, ParentChunkRecord.parent_text).where(
                    ParentChunkRecord.id.in_(valid_ids),
                    ParentChunkRecord.status == ChunkStatus.ACTIVE,
                )
            )
            return {row.id: row.parent_text for row in rows}

    ##########################################
    ############## CHILD LINKS ###############
    ##########################################

    async def create_child_links(self, links: list[ChildChunkLink]) -> None:
        if not links:
            return
        async with self._session_factory.begin() as session:
            session.add_all([
                RagChunkRecord(
                    document_id=link.document_id,
                    parent_chunk_id=link.parent_chunk_id,
                    chunk_index=link.chunk_index,
                    chunk_text=link.chunk_text,
                    vector_key=link.vector_key,
                )
                for link in links
            ])

    async def find_child_links(self, document_id: str | None = None, parent_chunk_ids: list[str] | None = None) -> list[ChildChunkLink]:
        stmt = select(RagChunkRecord)
        if document_id is not None:
            stmt = stmt.where(RagChunkRecord.document_id == document_id)
        if parent_chunk_ids is not None:
            if not parent_chunk_ids:
                return []
            stmt = stmt.where(RagChunkRecord.parent_chunk_id.in_(parent_chunk_ids))
        async with self._session_factory() as session:
            result = await session.scalars(stmt.order_by(RagChunkRecord.chunk_index))
            return [ChildChunkLink.model_validate(record) for record in result]

    async def count_chunks(self, document_id: str) -> tuple[int, int]:
        async with self._session_factory() as session:
            parents = await session.scalar(
                select(func.count()).select_from(ParentChunkRecord).where(ParentChunkRecord.document_id == document_id)
            )
            links = await session.scalar(
                select(func.count()).select_from(RagChunkRecord).where(RagChunkRecord.document_id == document_id)
            )
            return int(parents or 0), int(links or 0)
