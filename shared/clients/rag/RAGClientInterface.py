from abc import abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.VectorPoint import ChildHit, SearchFilter, VectorEntry, VectorMetadata
from shared.helper.HelperConfig import HelperConfig

UPSERT_BATCH_SIZE = 100  # max vectors per upsert call
DELETE_BATCH_SIZE = 1000  # max ids per delete call


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        """
        Returns the endpoint path for upsert requests.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points")
        """
        pass

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        """
        Returns the endpoint path for similarity queries.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/search")
        """
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        """
        Returns the endpoint path for deleting vectors by id.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/delete")
        """
        pass

    @abstractmethod
    def _get_upsert_method(self) -> str:
        """
        Returns the HTTP method used for upsert requests (e.g. "PUT").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_upsert_payload(self, entries: list[VectorEntry]) -> dict:
        """
        Builds the backend-specific request body for an upsert.

        Args:
            entries (list[VectorEntry]): Vectors with typed metadata.

        Returns:
            dict: The request body.
        """
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], top_k: int, search_filter: SearchFilter | None, include_metadata: bool) -> dict:
        """
        Builds the backend-specific request body for a similarity query.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Number of nearest vectors to return.
            search_filter (SearchFilter | None): Engine-independent filter, translated here.
            include_metadata (bool): Whether to return the stored metadata.

        Returns:
            dict: The request body.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, ids: list[str]) -> dict:
        """
        Builds the backend-specific request body for a delete by vector keys.

        Args:
            ids (list[str]): Vector keys to delete.

        Returns:
            dict: The request body.
        """
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_query_matches(self, raw_response: dict) -> list[tuple[str, float, dict[str, Any] | None]]:
        """
        Extracts ranked matches from a raw query response.

        Args:
            raw_response (dict): The parsed JSON response body.

        Returns:
            list[tuple[str, float, dict | None]]: (vector key, score, flat metadata) best-first.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_ensure_index(self, vector_size: int) -> None:
        """Make sure the target index exists. Engines with externally managed indexes do nothing.

        Args:
            vector_size (int): Dimension of the stored vectors.
        """
        return None

    async def do_upsert(self, entries: list[VectorEntry]) -> None:
        """Insert or replace vectors, batched to avoid oversized requests.

        Args:
            entries (list[VectorEntry]): The vectors to upsert.

        Raises:
            Exception: If any batch fails.
        """
        for batch_start in range(0, len(entries), UPSERT_BATCH_SIZE):
            batch = entries[batch_start: batch_start + UPSERT_BATCH_SIZE]
            await self.do_request(
                method=self._get_upsert_method(),
                json=self.get_upsert_payload(batch),
                endpoint=self._get_endpoint_upsert(),
                raise_on_error=True,
            )
        self.logging.debug("Upserted %d vectors into %s.", len(entries), self.get_engine_name())

    async def do_query(self, vector: list[float], top_k: int, search_filter: SearchFilter | None = None, include_metadata: bool = True) -> list[ChildHit]:
        """Query the nearest vectors.

        Matches whose metadata cannot be parsed, e.g. legacy points without a
        parent chunk reference, are dropped.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Number of nearest vectors to return.
            search_filter (SearchFilter | None): Optional filter.
            include_metadata (bool): Whether to request metadata.

        Returns:
            list[ChildHit]: Ranked hits, best first.

        Raises:
            Exception: If the request fails.
        """
        response = await self.do_request(
            method="POST",
            json=self.get_query_payload(vector, top_k, search_filter, include_metadata),
            endpoint=self._get_endpoint_query(),
            raise_on_error=True,
        )
        hits: list[ChildHit] = []
        for key, score, payload in self.extract_query_matches(response.json()):
            metadata = None
            if payload is not None:
                try:
                    metadata = VectorMetadata.from_payload(payload)
                except (ValueError, ValidationError) as exc:
                    self.logging.debug("Dropping vector %s with unusable metadata: %s", key, exc)
                    continue
            hits.append(ChildHit(id=key, score=score, metadata=metadata))
        return hits

    async def do_delete_many(self, ids: list[str]) -> None:
        """Delete vectors by key.

        Args:
            ids (list[str]): Vector keys to delete.

        Raises:
            Exception: If any batch fails.
        """
        for batch_start in range(0, len(ids), DELETE_BATCH_SIZE):
            batch = ids[batch_start: batch_start + DELETE_BATCH_SIZE]
            await self.do_request(
                method="POST",
                json=self.get_delete_payload(batch),
                endpoint=self._get_endpoint_delete(),
                raise_on_error=True,
            )
        self.logging.debug("Deleted %d vectors from %s.", len(ids), self.get_engine_name())
