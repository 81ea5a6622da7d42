from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    One engine-specific environment setting a client needs.

    The full variable name is built by the client as {TYPE}_{ENGINE}_{env_key},
    e.g. "RAG_QDRANT_COLLECTION".

    Attributes:
        env_key (str): Key without the client prefix.
        val_type (str): "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Fallback value. None marks the setting as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
