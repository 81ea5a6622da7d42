import httpx

from shared.clients.rerank.RerankClientInterface import RerankClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.search import RerankResult


class RerankClientVoyage(RerankClientInterface):
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
        return None

    def get_endpoint_rerank(self) -> str:
        return "/v1/rerank"

    ################ PAYLOAD BUILDER ##################
    def get_rerank_payload(self, query: str, documents: list[str], top_k: int) -> dict:
        return {
            "query": query,
            "documents": documents,
            "model": self.rerank_model,
            "top_k": top_k,
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_rerank_results(self, response_data: dict) -> list[RerankResult]:
        results = [
            RerankResult(
                index=int(item.get("index", 0)),
                relevance_score=float(item.get("relevance_score", 0.0)),
                document=item.get("document"),
            )
            for item in response_data.get("data", []) or []
        ]
        # voyage already sorts by relevance, keep it explicit
        return sorted(results, key=lambda result: result.relevance_score, reverse=True)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _send_rerank_request(self, body: dict) -> dict:
        async def _attempt(api_key: str) -> dict:
            response = await self.do_request(
                method="POST",
                endpoint=self.get_endpoint_rerank(),
                json=body,
                api_key=api_key,
                raise_on_error=True,
            )
            return response.json()

        return await self._credentials.try_each(_attempt)
