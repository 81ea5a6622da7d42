from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.engine_loader import load_engine_class


class RAGClientManager:
    """
    Manager class to handle the vector index client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _initialize_client(self) -> RAGClientInterface:
        """
        Initializes the RAG client for the engine set in RAG_ENGINE.

        Returns:
            RAGClientInterface: The configured vector index client.

        Raises:
            ValueError: If no engine is configured or the engine is unsupported.
        """
        engine = self.helper_config.get_string_val("RAG_ENGINE")
        client_class = load_engine_class(kind="rag", engine=engine)
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated RAG client for engine: %s", client.get_engine_name())
        return client

    def get_client(self) -> RAGClientInterface:
        """
        Returns the instantiated RAG client.

        Returns:
            RAGClientInterface: The RAG client instance.
        """
        return self.client
