"""Ingestion service.

Splits a document into header-delimited parent chunks, cuts every parent into
small child chunks, embeds the children and upserts them into the vector
index, while the parent text and the child links are persisted in the
relational chunk store.
"""

import asyncio

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface, EmbedMode
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import (
    ChunkTag,
    PatientTag,
    VectorEntry,
    VectorMetadata,
    tag_from_subtype,
)
from shared.helper.DocumentLockRegistry import DocumentLockRegistry
from shared.helper.HelperConfig import HelperConfig
from shared.helper.text_splitter import (
    CHILD_CHUNK_SIZE,
    PARENT_MAX_LENGTH,
    split_by_headers,
    split_into_children,
)
from shared.models.document import (
    CHUNK_INDEX_STRIDE,
    ChildChunkLink,
    ChunkStatus,
    Document,
    DocumentType,
    IngestionStatus,
    ParentChunk,
)
from shared.store.ChunkStoreInterface import ChunkStoreInterface


def make_vector_key(document_id: str, parent_index: int, child_index: int) -> str:
    """Build the deterministic vector index key of a child chunk.

    Re-ingesting the same document yields the same keys, so upserts overwrite
    instead of duplicating.
    """
    return f"{document_id}_parent{parent_index}_child{child_index}"


def tag_for_document(document: Document) -> ChunkTag:
    """Derive the vector tag of a stored document."""
    if document.type == DocumentType.PATIENT and document.patient_id:
        return PatientTag(patient_id=document.patient_id)
    return tag_from_subtype(document.rag_subtype)


class IngestionService:
    """Orchestrates chunking, embedding and persistence of documents.

    Public operations never raise; they report success as a boolean.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        chunk_store: ChunkStoreInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        lock_registry: DocumentLockRegistry | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = chunk_store
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._locks = lock_registry or DocumentLockRegistry()
        self.parent_max_length = int(helper_config.get_number_val("INGEST_PARENT_MAX_LENGTH", default=PARENT_MAX_LENGTH))
        self.child_chunk_size = int(helper_config.get_number_val("INGEST_CHILD_CHUNK_SIZE", default=CHILD_CHUNK_SIZE))
        self._background_tasks: set[asyncio.Task] = set()

    ##########################################
    ############## CORE INGEST ###############
    ##########################################

    async def ingest(self, document_id: str, full_text: str, document_title: str, tag: ChunkTag | None = None) -> bool:
        """Chunk, embed and store a document.

        Already completed documents are skipped without any write. Calls for
        the same document are serialised.

        Args:
            document_id (str): Id of an existing document.
            full_text (str): The text to ingest.
            document_title (str): Title stored with every vector.
            tag (ChunkTag | None): Vector tag. Derived from the stored document when omitted.

        Returns:
            bool: False if the ingestion as a whole failed, True otherwise,
                including when single parent chunks failed.
        """
        async with self._locks.hold(document_id):
            return await self._ingest(document_id, full_text, document_title, tag)

    async def ingest_patient_document(self, document_id: str, full_text: str, document_title: str, patient_id: str) -> bool:
        """Ingest a document whose vectors are owned by a patient.

        Returns:
            bool: See ingest().
        """
        return await self.ingest(document_id, full_text, document_title, tag=PatientTag(patient_id=patient_id))

    async def _ingest(self, document_id: str, full_text: str, document_title: str, tag: ChunkTag | None) -> bool:
        try:
            document = await self._store.get_document(document_id)
            if document is None:
                self.logging.error("Cannot ingest document %s: it does not exist.", document_id)
                return False
            if document.is_ingested:
                self.logging.info("Document %s already ingested, skipping embedding.", document_id)
                return True
            tag = tag or tag_for_document(document)

            parent_texts = split_by_headers(full_text, self.parent_max_length)
            if not parent_texts:
                self.logging.info("Document %s produced no chunks, nothing to embed.", document_id)
                return True

            self.logging.info(
                "Processing %d parent chunks for document '%s' (%s).",
                len(parent_texts), document_title, document_id,
            )

            # replace, not append
            await self._remove_parents(document_id, await self._store.find_parent_chunks(document_id))

            # warm up on the first parent to fail fast on systemic errors
            results = [await self._process_parent(document_id, document_title, tag, parent_texts[0], 0)]
            if len(parent_texts) > 1:
                results.extend(await asyncio.gather(*[
                    self._process_parent(document_id, document_title, tag, text, index)
                    for index, text in enumerate(parent_texts[1:], start=1)
                ]))

            succeeded = sum(1 for ok in results if ok)
            status = IngestionStatus.COMPLETE if succeeded == len(results) else IngestionStatus.PARTIAL
            await self._store.set_ingestion_status(document_id, status)

            if status == IngestionStatus.COMPLETE:
                self.logging.info("Successfully ingested document '%s' (%s).", document_title, document_id)
            else:
                self.logging.warning(
                    "Document '%s' (%s) partially ingested: %d of %d parent chunks succeeded.",
                    document_title, document_id, succeeded, len(results),
                )
            return True
        except Exception as exc:
            self.logging.error("Error ingesting document %s: %s", document_id, exc)
            return False

    async def _process_parent(self, document_id: str, document_title: str, tag: ChunkTag, parent_text: str, parent_index: int) -> bool:
        """Persist, embed and link a single parent chunk.

        Failures are logged and reported as False so sibling parents continue.
        """
        self.logging.debug("Processing parent chunk index %d of document %s.", parent_index, document_id)
        try:
            parent = await self._store.create_parent_chunk(document_id, parent_index, parent_text)

            children = split_into_children(parent_text, self.child_chunk_size)
            if not children:
                self.logging.info("No child chunks for parent index %d of document %s.", parent_index, document_id)
                await self._store.mark_parent_chunk_active(parent.id)
                return True

            vectors = await self._embed_client.do_embed(children, mode=EmbedMode.DOCUMENT)

            entries = [
                VectorEntry(
                    id=make_vector_key(document_id, parent_index, child_index),
                    vector=vector,
                    metadata=VectorMetadata(
                        document_id=document_id,
                        document_title=document_title,
                        parent_chunk_id=parent.id,
                        child_text=children[child_index],
                        parent_index=parent_index,
                        child_index=child_index,
                        tag=tag,
                    ),
                )
                for child_index, vector in enumerate(vectors)
            ]
            await self._rag_client.do_upsert(entries)

            await self._store.create_child_links([
                ChildChunkLink(
                    document_id=document_id,
                    parent_chunk_id=parent.id,
                    chunk_index=parent_index * CHUNK_INDEX_STRIDE + child_index,
                    chunk_text=entry.metadata.child_text,
                    vector_key=entry.id,
                )
                for child_index, entry in enumerate(entries)
            ])
            await self._store.mark_parent_chunk_active(parent.id)
            self.logging.debug("Upserted %d vectors for parent index %d of document %s.", len(entries), parent_index, document_id)
            return True
        except Exception as exc:
            self.logging.error("Error processing parent index %d of document %s: %s", parent_index, document_id, exc)
            return False

    ##########################################
    ################ CLEANUP #################
    ##########################################

    async def _remove_parents(self, document_id: str, parents: list[ParentChunk]) -> int:
        """Delete the vectors and rows of the given parent chunks.

        Vector keys come from the persisted links and are also recomputed from
        the parent text, which catches vectors upserted by a run that died
        before writing its links.

        Returns:
            int: Number of vector keys deleted.
        """
        if not parents:
            return 0
        parent_ids = [parent.id for parent in parents]
        keys = {link.vector_key for link in await self._store.find_child_links(parent_chunk_ids=parent_ids)}
        for parent in parents:
            child_count = len(split_into_children(parent.parent_text, self.child_chunk_size))
            keys.update(make_vector_key(document_id, parent.parent_index, child_index) for child_index in range(child_count))
        if keys:
            await self._rag_client.do_delete_many(sorted(keys))
            self.logging.info("Deleted %d vectors of document %s.", len(keys), document_id)
        await self._store.delete_parent_chunks(ids=parent_ids)
        return len(keys)

    async def cleanup_pending_chunks(self, document_id: str) -> int:
        """Remove parent chunks left PENDING by an interrupted ingestion, with their vectors.

        Returns:
            int: Number of removed parent chunks, 0 on failure.
        """
        async with self._locks.hold(document_id):
            try:
                pending = await self._store.find_parent_chunks(document_id, status=ChunkStatus.PENDING)
                await self._remove_parents(document_id, pending)
                if pending:
                    self.logging.warning("Removed %d pending parent chunks of document %s.", len(pending), document_id)
                return len(pending)
            except Exception as exc:
                self.logging.error("Error cleaning up pending chunks of document %s: %s", document_id, exc)
                return 0

    async def delete_vectors(self, document_id: str) -> bool:
        """Delete all vectors and chunk rows of a document and reset its status.

        Returns:
            bool: True on success.
        """
        async with self._locks.hold(document_id):
            return await self._delete_vectors(document_id)

    async def _delete_vectors(self, document_id: str) -> bool:
        try:
            await self._remove_parents(document_id, await self._store.find_parent_chunks(document_id))
            await self._store.set_ingestion_status(document_id, IngestionStatus.NOT_STARTED)
            return True
        except Exception as exc:
            self.logging.error("Error deleting vectors of document %s: %s", document_id, exc)
            return False

    ##########################################
    ########### DOCUMENT LIFECYCLE ###########
    ##########################################

    async def reembed_document(self, document_id: str) -> bool:
        """Drop all chunks of a stored document and ingest its content again.

        Returns:
            bool: True if the document was re-ingested.
        """
        async with self._locks.hold(document_id):
            try:
                document = await self._store.get_document(document_id)
            except Exception as exc:
                self.logging.error("Error loading document %s for re-embedding: %s", document_id, exc)
                return False
            if document is None:
                self.logging.error("Cannot re-embed document %s: it does not exist.", document_id)
                return False
            if not await self._delete_vectors(document_id):
                return False
            return await self._ingest(document_id, document.content, document.title, tag_for_document(document))

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document together with its vectors and chunks.

        Returns:
            bool: True on success.
        """
        async with self._locks.hold(document_id):
            if not await self._delete_vectors(document_id):
                return False
            try:
                await self._store.delete_document(document_id)
                return True
            except Exception as exc:
                self.logging.error("Error deleting document %s: %s", document_id, exc)
                return False

    async def ingest_incomplete_documents(self) -> int:
        """Ingest every stored document that is not COMPLETE, one document at a time.

        Returns:
            int: Number of documents ingested successfully.
        """
        try:
            documents = await self._store.find_documents_by_status([IngestionStatus.NOT_STARTED, IngestionStatus.PARTIAL])
        except Exception as exc:
            self.logging.error("Error listing incomplete documents: %s", exc)
            return 0
        self.logging.info("Found %d incomplete documents.", len(documents))
        succeeded = 0
        for document in documents:
            if await self.ingest(document.id, document.content, document.title, tag_for_document(document)):
                succeeded += 1
        return succeeded

    ##########################################
    ########### BACKGROUND INGEST ############
    ##########################################

    def schedule_ingest(self, document_id: str, full_text: str, document_title: str, tag: ChunkTag | None = None) -> asyncio.Task:
        """Start ingestion in the background and return immediately.

        Completion is only observable through the document's ingestion status.

        Returns:
            asyncio.Task: The running ingestion, resolving to the ingest() result.
        """
        task = asyncio.create_task(self.ingest(document_id, full_text, document_title, tag))
        self._background_tasks.add(task)
        task.add_done_callback(lambda done: self._on_background_done(document_id, done))
        return task

    def schedule_patient_ingest(self, document_id: str, full_text: str, document_title: str, patient_id: str) -> asyncio.Task:
        return self.schedule_ingest(document_id, full_text, document_title, tag=PatientTag(patient_id=patient_id))

    def _on_background_done(self, document_id: str, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            self.logging.warning("Background ingestion of document %s was cancelled.", document_id)
        elif task.exception() is not None:
            self.logging.error("Background ingestion of document %s crashed: %s", document_id, task.exception())
        elif task.result():
            self.logging.info("Background ingestion of document %s finished.", document_id)
        else:
            self.logging.error("Background ingestion of document %s failed.", document_id)

    async def drain(self) -> None:
        """Wait for all background ingestions to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
