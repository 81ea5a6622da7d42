"""SQLAlchemy 2.0 ORM tables of the chunk store.

Tables:
    documents     : ingested documents with their ingestion status.
    parent_chunks : header-delimited sections, the authoritative chunk text.
    rag_chunks    : embedded child fragments, joined to the vector index by vector_key.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from shared.models.document import ChunkStatus, DocumentType, IngestionStatus, RagSubtype


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DocumentRecord(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[DocumentType] = mapped_column(Enum(DocumentType, native_enum=False), nullable=False, default=DocumentType.RAG)
    rag_subtype: Mapped[RagSubtype | None] = mapped_column(Enum(RagSubtype, native_enum=False), nullable=True)
    patient_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ingestion_status: Mapped[IngestionStatus] = mapped_column(
        Enum(IngestionStatus, native_enum=False),
        nullable=False,
        default=IngestionStatus.NOT_STARTED,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    parent_chunks: Mapped[list[ParentChunkRecord]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ParentChunkRecord(Base):
    __tablename__ = "parent_chunks"
    __table_args__ = (UniqueConstraint("document_id", "parent_index", name="uq_parent_chunks_document_index"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_index: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ChunkStatus] = mapped_column(Enum(ChunkStatus, native_enum=False), nullable=False, default=ChunkStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    document: Mapped[DocumentRecord] = relationship(back_populates="parent_chunks")
    rag_chunks: Mapped[list[RagChunkRecord]] = relationship(
        back_populates="parent_chunk",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class RagChunkRecord(Base):
    __tablename__ = "rag_chunks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_chunk_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("parent_chunks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    vector_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    parent_chunk: Mapped[ParentChunkRecord] = relationship(back_populates="rag_chunks")
