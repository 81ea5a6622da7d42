import asyncio

import pytest

from services.retrieval.SearchService import SearchService, aggregate_parent_scores
from shared.clients.embed.EmbedClientInterface import EmbedMode
from shared.clients.rag.models.VectorPoint import ChildHit, MedicineTag, VectorMetadata
from shared.models.search import RerankResult


def _hit(parent_id: str, score: float, document_id: str = "doc", title: str = "Doc") -> ChildHit:
    return ChildHit(
        id=f"{parent_id}-{score}",
        score=score,
        metadata=VectorMetadata(
            document_id=document_id,
            document_title=title,
            parent_chunk_id=parent_id,
            child_text="child",
            parent_index=0,
            child_index=0,
            tag=MedicineTag(),
        ),
    )


@pytest.fixture
def search(helper_config, store, embed_client, rag_client, rerank_client):
    return SearchService(helper_config, store, embed_client, rag_client, rerank_client)


##########################################
################## RRF ###################
##########################################

def test_parent_with_more_hits_scores_higher():
    hits = [_hit("b", 0.95), _hit("a", 0.9), _hit("a", 0.85), _hit("a", 0.8)]

    ranked = aggregate_parent_scores(hits)

    assert [p.parent_chunk_id for p in ranked] == ["a", "b"]
    assert ranked[0].total_score == pytest.approx(1 / 61 + 1 / 62 + 1 / 63)
    assert ranked[0].max_score == 0.9


def test_near_ties_fall_back_to_max_score():
    # 1/60 and 1/61 differ by less than 0.001
    ranked = aggregate_parent_scores([_hit("low", 0.5), _hit("high", 0.9)])

    assert [p.parent_chunk_id for p in ranked] == ["high", "low"]


def test_only_ten_parents_are_kept():
    hits = [_hit(f"p{i}", 1.0 - i / 100) for i in range(15)]

    assert len(aggregate_parent_scores(hits)) == 10


##########################################
################ SEARCH ##################
##########################################

def test_doc_with_more_matching_children_ranks_first(search, store, rag_client, embed_client):
    doc1 = store.add_active_parent("doc1", 0, "# Doc1\nfever and chills")
    doc2 = store.add_active_parent("doc2", 0, "# Doc2\nheadache")
    rag_client.query_hits = [
        _hit(doc2.id, 0.92, "doc2", "Doc2"),
        _hit(doc1.id, 0.91, "doc1", "Doc1"),
        _hit(doc1.id, 0.90, "doc1", "Doc1"),
        _hit(doc1.id, 0.89, "doc1", "Doc1"),
    ]

    results = asyncio.run(search.search("fever", 50, "all"))

    assert [r.document_title for r in results] == ["Doc1", "Doc2"]
    assert results[0].parent_text == "# Doc1\nfever and chills"
    assert results[0].score == 0.91
    assert embed_client.calls == [(["fever"], EmbedMode.QUERY)]
    top_k, query_filter = rag_client.query_calls[0]
    assert top_k == 50
    assert query_filter.tag_types == ["medicine", "disease"]
    assert query_filter.patient_id is None


def test_identical_parent_texts_are_deduplicated(search, store, rag_client):
    first = store.add_active_parent("doc", 0, "same text")
    second = store.add_active_parent("doc", 1, "same text")
    rag_client.query_hits = [_hit(first.id, 0.9), _hit(second.id, 0.8)]

    results = asyncio.run(search.search("query"))

    assert [r.parent_chunk_id for r in results] == [first.id]


def test_missing_parent_text_is_dropped(search, store, rag_client):
    known = store.add_active_parent("doc", 0, "known")
    rag_client.query_hits = [_hit("vanished", 0.99), _hit(known.id, 0.5)]

    results = asyncio.run(search.search("query"))

    assert [r.parent_chunk_id for r in results] == [known.id]


def test_reranker_order_and_scores_win(search, store, rag_client, rerank_client):
    a = store.add_active_parent("doc", 0, "alpha")
    b = store.add_active_parent("doc", 1, "beta")
    rag_client.query_hits = [_hit(a.id, 0.9), _hit(b.id, 0.8)]
    rerank_client.results = [RerankResult(index=1, relevance_score=0.97), RerankResult(index=0, relevance_score=0.12)]

    results = asyncio.run(search.search("query"))

    assert [(r.parent_text, r.score) for r in results] == [("beta", 0.97), ("alpha", 0.12)]
    assert rerank_client.calls == [("query", ["alpha", "beta"], 2)]


def test_empty_rerank_keeps_fused_order(search, store, rag_client, rerank_client):
    a = store.add_active_parent("doc", 0, "alpha")
    b = store.add_active_parent("doc", 1, "beta")
    rag_client.query_hits = [_hit(a.id, 0.9), _hit(b.id, 0.8)]
    rerank_client.results = []

    results = asyncio.run(search.search("query"))

    assert [(r.parent_text, r.score) for r in results] == [("alpha", 0.9), ("beta", 0.8)]


def test_search_without_reranker(helper_config, store, embed_client, rag_client):
    service = SearchService(helper_config, store, embed_client, rag_client)
    a = store.add_active_parent("doc", 0, "alpha")
    rag_client.query_hits = [_hit(a.id, 0.9)]

    assert [r.parent_text for r in asyncio.run(service.search("query"))] == ["alpha"]


@pytest.mark.parametrize("query", ["", "   \n"])
def test_blank_query_returns_nothing(search, embed_client, query):
    assert asyncio.run(search.search(query)) == []
    assert embed_client.calls == []


def test_unknown_type_filter_is_rejected(search, embed_client):
    assert asyncio.run(search.search("query", type_filter="recipes")) == []
    assert embed_client.calls == []


def test_type_filter_narrows_tags(search, rag_client):
    asyncio.run(search.search("query", type_filter="disease"))

    assert rag_client.query_calls[0][1].tag_types == ["disease"]


@pytest.mark.parametrize("top_k", [0, -3])
def test_non_positive_top_k_returns_nothing(search, embed_client, rag_client, top_k):
    assert asyncio.run(search.search("query", top_k=top_k)) == []
    assert asyncio.run(search.search_patient("query", "p-7", top_k=top_k)) == []
    assert asyncio.run(search.query_similar_documents("query", top_k=top_k)) == []
    assert embed_client.calls == []
    assert rag_client.query_calls == []


def test_missing_top_k_uses_configured_default(search, rag_client):
    asyncio.run(search.search("query", top_k=None))

    assert rag_client.query_calls[0][0] == 50


def test_index_failure_returns_nothing(search, rag_client):
    rag_client.query_error = ConnectionError("index unreachable")

    assert asyncio.run(search.search("query")) == []


def test_patient_search_is_scoped_to_patient(search, store, rag_client):
    parent = store.add_active_parent("record", 0, "blood pressure 120/80")
    rag_client.query_hits = [_hit(parent.id, 0.7, "record", "Record")]

    results = asyncio.run(search.search_patient("blood pressure", "p-7"))

    query_filter = rag_client.query_calls[0][1]
    assert query_filter.patient_id == "p-7"
    assert query_filter.tag_types == ["patient"]
    assert [r.parent_chunk_id for r in results] == [parent.id]


def test_patient_search_requires_patient_id(search, rag_client):
    assert asyncio.run(search.search_patient("query", "")) == []
    assert rag_client.query_calls == []


##########################################
############# CHILD LEVEL ################
##########################################

def test_query_similar_documents_defaults_to_general_filter(search, rag_client):
    rag_client.query_hits = [_hit("p1", 0.9), ChildHit(id="legacy", score=0.8)]

    hits = asyncio.run(search.query_similar_documents("query"))

    assert [hit.id for hit in hits] == ["p1-0.9"]
    assert rag_client.query_calls[0][0] == 5
    assert rag_client.query_calls[0][1].patient_id is None


def test_get_parent_texts_ignores_unknown_ids(search, store):
    parent = store.add_active_parent("doc", 0, "text")

    assert asyncio.run(search.get_parent_texts([parent.id, "", "missing"])) == {parent.id: "text"}
