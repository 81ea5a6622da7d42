from abc import abstractmethod
from enum import Enum

import httpx
from shared.clients.ClientInterface import ClientInterface

from shared.helper.HelperConfig import HelperConfig


class EmbedMode(str, Enum):
    """Input type of an embedding request. Some providers embed queries and documents differently."""

    DOCUMENT = "document"
    QUERY = "query"


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # model and embedding config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL")
        self.output_dimension = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_OUTPUT_DIMENSION", default=2048))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str], mode: EmbedMode, output_dimension: int) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.
            mode (EmbedMode): Whether the texts are documents or a search query.
            output_dimension (int): Requested vector size.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]}, already ordered
        - Voyage / OpenAI-compatible: {"data": [{"embedding": [...], "index": 0}]}, needs sorting

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _send_embed_request(self, body: dict) -> dict:
        """Send the embedding request and return the parsed body.

        Pooled clients override this to retry across their credentials.
        """
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(),
            json=body,
            raise_on_error=True,
        )
        return response.json()

    async def do_embed(self, texts: list[str] | str, mode: EmbedMode = EmbedMode.DOCUMENT, output_dimension: int | None = None) -> list[list[float]]:
        """Embed one or more texts and return the vectors in input order.

        Args:
            texts (list[str] | str): One or more texts to embed.
            mode (EmbedMode): Document mode for indexing, query mode for searching.
            output_dimension (int | None): Requested vector size. Defaults to the configured size.

        Returns:
            list[list[float]]: One vector per input text, same order.

        Raises:
            Exception: If the request fails.
            ValueError: If the response is empty or not aligned with the input.
        """
        texts = [texts] if isinstance(texts, str) else list(texts)
        if not texts:
            return []
        dimension = output_dimension or self.output_dimension
        body = self.get_embed_payload(texts, mode, dimension)
        vectors = self.extract_embeddings_from_response(await self._send_embed_request(body))
        if len(vectors) != len(texts):
            raise ValueError(
                f"Embedding backend returned {len(vectors)} vectors for {len(texts)} inputs."
            )
        if any(len(vector) != len(vectors[0]) for vector in vectors):
            raise ValueError("Embedding backend returned vectors of mixed dimensions.")
        self.logging.debug("Embedded %d text(s) in %s mode.", len(texts), mode.value)
        return vectors
