"""Pydantic models for documents and their relational chunk records.

Hierarchy:
  Document       : an ingested unit of content, owner of all chunks.
  ParentChunk    : one header-delimited section of a document, authoritative text.
  ChildChunkLink : one embedded fragment of a parent, joined to its vector by vector_key.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

# child chunk_index = parent_index * CHUNK_INDEX_STRIDE + child_index
CHUNK_INDEX_STRIDE = 1000


class DocumentType(str, Enum):
    RAG = "RAG"
    PATIENT = "PATIENT"


class RagSubtype(str, Enum):
    MEDICINE = "MEDICINE"
    DISEASE = "DISEASE"


class IngestionStatus(str, Enum):
    """Outcome of the last ingestion attempt of a document.

    PARTIAL means every parent chunk was attempted but at least one failed.
    """

    NOT_STARTED = "NOT_STARTED"
    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"


class ChunkStatus(str, Enum):
    """Write-ahead marker of a parent chunk.

    A parent is PENDING from creation until its vectors and links are written.
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"


class Document(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    content: str
    type: DocumentType = DocumentType.RAG
    rag_subtype: RagSubtype | None = None
    patient_id: str | None = None
    ingestion_status: IngestionStatus = IngestionStatus.NOT_STARTED
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_ingested(self) -> bool:
        """True only when the last ingestion succeeded for every parent chunk."""
        return self.ingestion_status == IngestionStatus.COMPLETE


class ParentChunk(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    parent_index: int
    parent_text: str
    status: ChunkStatus = ChunkStatus.PENDING
    created_at: datetime | None = None


class ChildChunkLink(BaseModel):
    """Relational half of an embedded child chunk.

    Attributes:
        chunk_index:  parent_index * CHUNK_INDEX_STRIDE + child_index, stable across parents.
        chunk_text:   The child text, duplicated from the vector metadata for analytics.
        vector_key:   Unique id of the matching vector index entry.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    document_id: str
    parent_chunk_id: str
    chunk_index: int
    chunk_text: str
    vector_key: str
    created_at: datetime | None = None
