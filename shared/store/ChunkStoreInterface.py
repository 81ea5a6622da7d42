from abc import ABC, abstractmethod

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


class ChunkStoreInterface(ABC):
    """Relational store of documents, parent chunks and child chunk links.

    Parent chunk text lives only here. Implementations must be safe to call
    from concurrently running coroutines.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    @abstractmethod
    async def create_all(self) -> None:
        """Create missing tables."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        pass

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    @abstractmethod
    async def create_document(
        self,
        title: str,
        content: str,
        type: DocumentType = DocumentType.RAG,
        rag_subtype: RagSubtype | None = None,
        patient_id: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        """Persist a new document with status NOT_STARTED."""
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        pass

    @abstractmethod
    async def find_documents_by_status(self, statuses: list[IngestionStatus]) -> list[Document]:
        pass

    @abstractmethod
    async def set_ingestion_status(self, document_id: str, status: IngestionStatus) -> None:
        """
        Raises:
            LookupError: If the document does not exist.
        """
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete a document together with all its chunk rows."""
        pass

    ##########################################
    ############# PARENT CHUNKS ##############
    ##########################################

    @abstractmethod
    async def create_parent_chunk(self, document_id: str, parent_index: int, parent_text: str) -> ParentChunk:
        """Persist a parent chunk in PENDING state."""
        pass

    @abstractmethod
    async def mark_parent_chunk_active(self, parent_chunk_id: str) -> None:
        pass

    @abstractmethod
    async def find_parent_chunks(self, document_id: str, status: ChunkStatus | None = None) -> list[ParentChunk]:
        """Return a document's parent chunks ordered by parent_index."""
        pass

    @abstractmethod
    async def delete_parent_chunks(self, document_id: str | None = None, ids: list[str] | None = None) -> int:
        """Delete parent chunks of a document or by id, cascading to their child links.

        Returns:
            int: Number of deleted parent chunks.
        """
        pass

    @abstractmethod
    async def find_parent_texts(self, ids: list[str]) -> dict[str, str]:
        """Fetch the text of ACTIVE parent chunks in a single query.

        Returns:
            dict[str, str]: parent chunk id -> parent text. Unknown ids are absent.
        """
        pass

    ##########################################
    ############## CHILD LINKS ###############
    ##########################################

    @abstractmethod
    async def create_child_links(self, links: list[ChildChunkLink]) -> None:
        pass

    @abstractmethod
    async def find_child_links(self, document_id: str | None = None, parent_chunk_ids: list[str] | None = None) -> list[ChildChunkLink]:
        pass

    @abstractmethod
    async def count_chunks(self, document_id: str) -> tuple[int, int]:
        """
        Returns:
            tuple[int, int]: (parent chunk count, child link count) of the document.
        """
        pass
