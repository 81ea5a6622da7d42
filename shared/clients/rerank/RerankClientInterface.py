from abc import abstractmethod

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import RerankResult


class RerankClientInterface(ClientInterface):
    """Cross-encoder reranker.

    Reranking refines an existing ranking and is never required for a search
    to succeed, so do_rerank() reports failures as an empty result.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self.rerank_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default="rerank-2.5")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rerank"
        """
        return "rerank"

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_rerank(self) -> str:
        """
        Returns the endpoint path for rerank requests (e.g. "/v1/rerank").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_rerank_payload(self, query: str, documents: list[str], top_k: int) -> dict:
        """Build the backend-specific request body for a rerank request.

        Args:
            query (str): The search query.
            documents (list[str]): Candidate texts.
            top_k (int): Number of results to return.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_rerank_results(self, response_data: dict) -> list[RerankResult]:
        """Extract reranked entries from a raw rerank response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[RerankResult]: Entries sorted by relevance, best first.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _send_rerank_request(self, body: dict) -> dict:
        """Send the rerank request and return the parsed body. Pooled clients override this."""
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_rerank(),
            json=body,
            raise_on_error=True,
        )
        return response.json()

    async def do_rerank(self, query: str, documents: list[str], top_k: int | None = None) -> list[RerankResult]:
        """Rerank documents against a query.

        Args:
            query (str): The search query.
            documents (list[str]): Candidate texts.
            top_k (int | None): Number of results. Defaults to all documents.

        Returns:
            list[RerankResult]: Results best-first, or an empty list if the
                reranker is unavailable or returned nothing usable.
        """
        if not documents:
            return []
        self.logging.info("Reranking %d documents with %s...", len(documents), self.get_engine_name())
        try:
            body = self.get_rerank_payload(query, documents, top_k or len(documents))
            results = self.extract_rerank_results(await self._send_rerank_request(body))
        except Exception as exc:
            self.logging.error("Reranking failed with %s: %s", self.get_engine_name(), exc)
            return []
        valid = [result for result in results if 0 <= result.index < len(documents)]
        if len(valid) != len(results):
            self.logging.warning("Reranker returned %d out-of-range indices, ignoring them.", len(results) - len(valid))
        if not valid:
            self.logging.info("Reranker returned no results.")
        return valid
