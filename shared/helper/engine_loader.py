"""Resolves client classes from engine names set in the environment."""

from importlib import import_module

_CLASS_PREFIXES = {
    "embed": "EmbedClient",
    "rag": "RAGClient",
    "rerank": "RerankClient",
}


def load_engine_class(kind: str, engine: str) -> type:
    """Import the client class for an engine.

    Classes live at shared.clients.{kind}.{engine}.{Prefix}{Engine}, e.g.
    shared.clients.rag.qdrant.RAGClientQdrant.

    Args:
        kind (str): Client kind ("embed", "rag" or "rerank").
        engine (str): Engine name as written in the config, case-insensitive.

    Returns:
        type: The client class.

    Raises:
        ValueError: If the engine name is empty or no such client exists.
    """
    if kind not in _CLASS_PREFIXES:
        raise ValueError(f"Unknown client kind '{kind}'.")
    engine = (engine or "").strip().lower()
    if not engine:
        raise ValueError(f"No {kind} engine specified in configuration.")
    class_name = f"{_CLASS_PREFIXES[kind]}{engine.capitalize()}"
    try:
        module = import_module(f"shared.clients.{kind}.{engine}.{class_name}")
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Unsupported {kind} engine specified: '{engine}'. Error: {e}")
