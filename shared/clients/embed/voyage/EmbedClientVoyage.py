import httpx

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface, EmbedMode
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientVoyage(EmbedClientInterface):
    """Voyage AI embeddings with a pool of API keys.

    Every request starts at a random key and falls through the remaining keys
    on failure.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.voyageai.com", val_type="string")
        self._credentials = self._build_credential_pool()

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Voyage"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEYS", val_type="list", default=None),
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.voyageai.com"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self, api_key: str | None = None) -> dict:
        if api_key:
            return {"Authorization": f"Bearer {api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str | None:
        # voyage has no unauthenticated health endpoint
        return None

    def get_endpoint_embedding(self) -> str:
        return "/v1/embeddings"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str], mode: EmbedMode, output_dimension: int) -> dict:
        return {
            "input": texts,
            "model": self.embed_model,
            "input_type": mode.value,
            "output_dimension": output_dimension,
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        data = response_data.get("data")
        if not data:
            raise ValueError(
                "Voyage response does not contain embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        embeddings = [item.get("embedding") for item in ordered]
        if any(not embedding for embedding in embeddings):
            raise ValueError("Voyage response contains an empty embedding.")
        return embeddings

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _send_embed_request(self, body: dict) -> dict:
        async def _attempt(api_key: str) -> dict:
            response = await self.do_request(
                method="POST",
                endpoint=self.get_endpoint_embedding(),
                json=body,
                api_key=api_key,
                raise_on_error=True,
            )
            return response.json()

        return await self._credentials.try_each(_attempt)
