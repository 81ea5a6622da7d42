import uuid
from typing import Any

import httpx

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import SearchFilter, VectorEntry
from shared.models.config import EnvConfig

# Fixed namespace for deterministic UUIDv5 point IDs.
# Changing this value would invalidate all existing point IDs in Qdrant.
_POINT_ID_NAMESPACE = uuid.UUID("0b9e4a8c-5d2f-4c71-9a3e-7f1d2c6b8e40")


def make_point_id(vector_key: str) -> str:
    """Map a vector key to the UUID point id Qdrant requires."""
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, vector_key))


class RAGClientQdrant(RAGClientInterface):
    """Qdrant over its REST API.

    Qdrant only accepts UUID or integer point ids, so each vector key is
    mapped to a UUIDv5 and stored in the payload as "vectorKey".
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default=None)
        ]

    ################ AUTH ##################
    def _get_auth_header(self, api_key: str | None = None) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str | None:
        return "/healthz"

    def _get_endpoint_upsert(self) -> str:
        return f"/collections/{self._collection_name}/points"

    def _get_endpoint_query(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_delete(self) -> str:
        return f"/collections/{self._collection_name}/points/delete"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_upsert_method(self) -> str:
        return "PUT"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, entries: list[VectorEntry]) -> dict:
        points = []
        for entry in entries:
            payload = entry.metadata.to_payload()
            payload["vectorKey"] = entry.id
            points.append({
                "id": make_point_id(entry.id),
                "vector": entry.vector,
                "payload": payload,
            })
        return {"points": points}

    def get_query_payload(self, vector: list[float], top_k: int, search_filter: SearchFilter | None, include_metadata: bool) -> dict:
        payload: dict[str, Any] = {
            "vector": vector,
            "limit": top_k,
            "with_payload": True if include_metadata else ["vectorKey"],
        }
        if search_filter is not None:
            payload["filter"] = self._build_filter(search_filter)
        return payload

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"points": [make_point_id(vector_key) for vector_key in ids]}

    def _build_filter(self, search_filter: SearchFilter) -> dict:
        must: list[dict] = []
        if search_filter.tag_types:
            must.append({"key": "type", "match": {"any": list(search_filter.tag_types)}})
        if search_filter.patient_id is not None:
            must.append({"key": "patient", "match": {"value": True}})
            must.append({"key": "patientId", "match": {"value": search_filter.patient_id}})
            return {"must": must}
        # general retrieval never sees patient data
        return {"must": must, "must_not": [{"key": "patient", "match": {"value": True}}]}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict) -> list[tuple[str, float, dict[str, Any] | None]]:
        matches = []
        for point in raw_response.get("result", []) or []:
            payload = point.get("payload") or {}
            key = payload.get("vectorKey") or str(point.get("id"))
            # only the key was requested when metadata is excluded
            metadata = payload if set(payload) - {"vectorKey"} else None
            matches.append((key, float(point.get("score", 0.0)), metadata))
        return matches

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_ensure_index(self, vector_size: int) -> None:
        if await self.do_existence_check():
            self.logging.info("Qdrant collection %r already exists.", self._collection_name)
            return
        await self.do_request(
            method="PUT",
            json={"vectors": {"size": vector_size, "distance": "Cosine"}},
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True,
        )
        self.logging.info("Qdrant collection %r created with vector size %d.", self._collection_name, vector_size)
