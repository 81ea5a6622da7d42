from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.engine_loader import load_engine_class


class EmbedClientManager:
    """
    Manager class to handle the Embed client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _initialize_client(self) -> EmbedClientInterface:
        """
        Initializes the Embed client for the engine set in EMBED_ENGINE.

        Returns:
            EmbedClientInterface: The configured Embed client.

        Raises:
            ValueError: If no engine is configured or the engine is unsupported.
        """
        engine = self.helper_config.get_string_val("EMBED_ENGINE")
        client_class = load_engine_class(kind="embed", engine=engine)
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Embed client for engine: %s", client.get_engine_name())
        return client

    def get_client(self) -> EmbedClientInterface:
        """
        Returns the instantiated Embed client.

        Returns:
            EmbedClientInterface: The Embed client instance.
        """
        return self.client
