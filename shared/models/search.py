"""Pydantic models for search results."""

from typing import Literal

from pydantic import BaseModel

TypeFilter = Literal["medicine", "disease", "all"]


class ParentSearchResult(BaseModel):
    """A parent chunk returned by the retrieval engine, ordered best-first.

    score is the reranker relevance score, or the best raw child similarity
    when reranking was unavailable.
    """

    parent_chunk_id: str
    parent_text: str
    document_id: str
    document_title: str
    score: float


class RerankResult(BaseModel):
    """One entry of a reranker response. index points into the submitted documents."""

    index: int
    relevance_score: float
    document: str | None = None
