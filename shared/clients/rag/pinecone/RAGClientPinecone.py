from typing import Any

import httpx

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import SearchFilter, VectorEntry
from shared.models.config import EnvConfig


class RAGClientPinecone(RAGClientInterface):
    """Pinecone data-plane REST API. Vector keys are used as Pinecone ids directly."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._index_host = self.get_config_val("INDEX_HOST", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Pinecone"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="INDEX_HOST", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self, api_key: str | None = None) -> dict:
        return {"Api-Key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        host = self._index_host
        return host if host.startswith("http") else f"https://{host}"

    def _get_endpoint_healthcheck(self) -> str | None:
        return "/describe_index_stats"

    def _get_endpoint_upsert(self) -> str:
        return "/vectors/upsert"

    def _get_endpoint_query(self) -> str:
        return "/query"

    def _get_endpoint_delete(self) -> str:
        return "/vectors/delete"

    def _get_upsert_method(self) -> str:
        return "POST"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, entries: list[VectorEntry]) -> dict:
        return {
            "vectors": [
                {"id": entry.id, "values": entry.vector, "metadata": entry.metadata.to_payload()}
                for entry in entries
            ]
        }

    def get_query_payload(self, vector: list[float], top_k: int, search_filter: SearchFilter | None, include_metadata: bool) -> dict:
        payload: dict[str, Any] = {
            "vector": vector,
            "topK": top_k,
            "includeMetadata": include_metadata,
        }
        built_filter = self._build_filter(search_filter) if search_filter is not None else {}
        if built_filter:
            payload["filter"] = built_filter
        return payload

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"ids": ids}

    def _build_filter(self, search_filter: SearchFilter) -> dict:
        conditions: list[dict] = []
        if search_filter.tag_types:
            conditions.append({"type": {"$in": list(search_filter.tag_types)}})
        if search_filter.patient_id is not None:
            conditions.append({"patient": {"$eq": True}})
            conditions.append({"patientId": {"$eq": search_filter.patient_id}})
        if not conditions:
            return {}
        if len(conditions) == 1:
            return conditions[0]
        return {"$and": conditions}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict) -> list[tuple[str, float, dict[str, Any] | None]]:
        return [
            (str(match.get("id")), float(match.get("score", 0.0)), match.get("metadata"))
            for match in raw_response.get("matches", []) or []
        ]
