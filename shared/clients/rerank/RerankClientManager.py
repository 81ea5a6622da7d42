from shared.helper.HelperConfig import HelperConfig
from shared.clients.rerank.RerankClientInterface import RerankClientInterface
from shared.helper.engine_loader import load_engine_class


class RerankClientManager:
    """
    Manager class to handle the Rerank client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _initialize_client(self) -> RerankClientInterface:
        """
        Initializes the Rerank client for the engine set in RERANK_ENGINE.

        Raises:
            ValueError: If no engine is configured or the engine is unsupported.
        """
        engine = self.helper_config.get_string_val("RERANK_ENGINE")
        client_class = load_engine_class(kind="rerank", engine=engine)
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Rerank client for engine: %s", client.get_engine_name())
        return client

    def get_client(self) -> RerankClientInterface:
        return self.client
