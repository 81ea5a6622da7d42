"""Retrieval service.

Embeds a query, searches child vectors, fuses child hits into parent chunks
with reciprocal rank fusion and reranks the parent texts.
"""

from dataclasses import dataclass
from functools import cmp_to_key
from typing import get_args

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface, EmbedMode
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import ChildHit, SearchFilter
from shared.clients.rerank.RerankClientInterface import RerankClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import ParentSearchResult, TypeFilter
from shared.store.ChunkStoreInterface import ChunkStoreInterface

RRF_K = 60
MAX_PARENTS = 10
TIE_EPSILON = 0.001
DEFAULT_TOP_K = 50


@dataclass
class ParentScore:
    """Fused score of one parent chunk."""

    parent_chunk_id: str
    document_id: str
    document_title: str
    total_score: float = 0.0
    max_score: float = float("-inf")


def _compare_parent_scores(a: ParentScore, b: ParentScore) -> int:
    if abs(a.total_score - b.total_score) < TIE_EPSILON:
        return (b.max_score > a.max_score) - (b.max_score < a.max_score)
    return -1 if a.total_score > b.total_score else 1


def aggregate_parent_scores(hits: list[ChildHit], k: int = RRF_K, limit: int = MAX_PARENTS) -> list[ParentScore]:
    """Fuse ranked child hits into parent scores with reciprocal rank fusion.

    A hit at zero-based rank i contributes 1 / (i + k) to its parent's total
    score. Parents are ordered by total score; totals closer than 0.001 are
    ordered by their best raw similarity.

    Args:
        hits (list[ChildHit]): Child hits, best first. Hits without metadata are skipped.
        k (int): RRF constant.
        limit (int): Number of parents to keep.

    Returns:
        list[ParentScore]: The best parents, best first.
    """
    parents: dict[str, ParentScore] = {}
    for rank, hit in enumerate(hits):
        if hit.metadata is None or not hit.metadata.parent_chunk_id:
            continue
        parent_id = hit.metadata.parent_chunk_id
        entry = parents.get(parent_id)
        if entry is None:
            entry = ParentScore(
                parent_chunk_id=parent_id,
                document_id=hit.metadata.document_id,
                document_title=hit.metadata.document_title,
            )
            parents[parent_id] = entry
        entry.total_score += 1.0 / (rank + k)
        entry.max_score = max(entry.max_score, hit.score)

    ranked = sorted(parents.values(), key=cmp_to_key(_compare_parent_scores))
    return ranked[:limit]


class SearchService:
    """Answers queries with reranked parent chunks.

    Public operations never raise. Failures degrade to empty results.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        chunk_store: ChunkStoreInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        rerank_client: RerankClientInterface | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = chunk_store
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._rerank_client = rerank_client
        self.default_top_k = int(helper_config.get_number_val("SEARCH_TOP_K", default=DEFAULT_TOP_K))

    ##########################################
    ################ SEARCH ##################
    ##########################################

    async def search(self, query: str, top_k: int | None = None, type_filter: str = "all") -> list[ParentSearchResult]:
        """Search general knowledge documents. Patient data is never returned.

        Args:
            query (str): The query text.
            top_k (int | None): Number of child vectors to retrieve. Defaults to SEARCH_TOP_K.
            type_filter (str): "all", "medicine" or "disease".

        Returns:
            list[ParentSearchResult]: Parent chunks best-first, empty on invalid input or error.
        """
        if type_filter not in get_args(TypeFilter):
            self.logging.warning("Rejecting search with unknown type filter '%s'.", type_filter)
            return []
        tag_types = None if type_filter == "all" else [type_filter]
        return await self._search(query, top_k, SearchFilter.general(tag_types))

    async def search_patient(self, query: str, patient_id: str, top_k: int | None = None) -> list[ParentSearchResult]:
        """Search the documents of a single patient.

        Returns:
            list[ParentSearchResult]: Parent chunks best-first, empty on invalid input or error.
        """
        if not patient_id:
            self.logging.warning("Rejecting patient search without patient id.")
            return []
        return await self._search(query, top_k, SearchFilter.for_patient(patient_id))

    async def _search(self, query: str, top_k: int | None, search_filter: SearchFilter) -> list[ParentSearchResult]:
        if not query or not query.strip():
            return []
        if top_k is None:
            top_k = self.default_top_k
        if top_k < 1:
            self.logging.warning("Rejecting search with top_k %d.", top_k)
            return []
        try:
            hits = await self._query_children(query, top_k, search_filter)
            self.logging.debug("Search '%s' returned %d child hits.", query, len(hits))
            if not hits:
                return []

            parents = aggregate_parent_scores(hits)
            texts = await self._store.find_parent_texts([parent.parent_chunk_id for parent in parents])

            candidates: list[ParentSearchResult] = []
            seen: set[str] = set()
            for parent in parents:
                text = texts.get(parent.parent_chunk_id, "")
                if not text or text in seen:
                    continue
                seen.add(text)
                candidates.append(ParentSearchResult(
                    parent_chunk_id=parent.parent_chunk_id,
                    parent_text=text,
                    document_id=parent.document_id,
                    document_title=parent.document_title,
                    score=parent.max_score,
                ))
        except Exception as exc:
            self.logging.error("Search for '%s' failed: %s", query, exc)
            return []

        results = await self._rerank(query, candidates)
        self.logging.info("Search '%s' returning %d parent chunks.", query, len(results))
        return results

    async def _rerank(self, query: str, candidates: list[ParentSearchResult]) -> list[ParentSearchResult]:
        """Reorder candidates by reranker relevance, keeping the fused order if the reranker gives nothing."""
        if not candidates or self._rerank_client is None:
            return candidates
        reranked = await self._rerank_client.do_rerank(query, [c.parent_text for c in candidates], len(candidates))
        if not reranked:
            self.logging.info("Reranker unavailable, keeping fused order.")
            return candidates
        return [
            candidates[result.index].model_copy(update={"score": result.relevance_score})
            for result in reranked
            if 0 <= result.index < len(candidates)
        ]

    ##########################################
    ############# CHILD LEVEL ################
    ##########################################

    async def _query_children(self, query: str, top_k: int, search_filter: SearchFilter | None) -> list[ChildHit]:
        vectors = await self._embed_client.do_embed([query], mode=EmbedMode.QUERY)
        hits = await self._rag_client.do_query(vectors[0], top_k, search_filter, include_metadata=True)
        return [hit for hit in hits if hit.metadata is not None and hit.metadata.parent_chunk_id]

    async def query_similar_documents(self, query: str, top_k: int = 5, search_filter: SearchFilter | None = None) -> list[ChildHit]:
        """Return the child chunks closest to a query, with metadata.

        Without a filter only general knowledge chunks are searched.

        Returns:
            list[ChildHit]: Hits best-first, empty on error.
        """
        if not query or not query.strip() or top_k < 1:
            return []
        try:
            return await self._query_children(query, top_k, search_filter or SearchFilter.general())
        except Exception as exc:
            self.logging.error("Similarity query for '%s' failed: %s", query, exc)
            return []

    async def get_parent_texts(self, parent_chunk_ids: list[str]) -> dict[str, str]:
        """Fetch parent chunk texts in one batch. Unknown ids are absent from the result."""
        try:
            return await self._store.find_parent_texts([pid for pid in parent_chunk_ids if pid])
        except Exception as exc:
            self.logging.error("Fetching parent texts failed: %s", exc)
            return {}
