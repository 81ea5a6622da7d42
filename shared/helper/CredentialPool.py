"""Load-balanced credential pool with linear fallback."""

import logging
import random
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class CredentialPoolExhaustedError(Exception):
    """Raised when an operation failed with every credential in the pool."""


class CredentialPool:
    """Holds a fixed set of API keys and runs operations against them.

    Each call to try_each() starts at a random key and walks through all keys
    once, wrapping around, until one attempt succeeds. The pool holds no
    global state; every client owns its own instance.
    """

    def __init__(self, keys: list[str], logger: logging.Logger, rng: random.Random | None = None) -> None:
        self._keys = [key for key in keys if key]
        if not self._keys:
            raise ValueError("Credential pool requires at least one non-empty API key.")
        self.logging = logger
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._keys)

    def _get_start_index(self) -> int:
        return self._rng.randrange(len(self._keys))

    async def try_each(self, operation: Callable[[str], Awaitable[T]]) -> T:
        """Run an async operation with each key until one succeeds.

        Args:
            operation (Callable[[str], Awaitable[T]]): Coroutine factory receiving the API key.

        Returns:
            T: The result of the first successful attempt.

        Raises:
            CredentialPoolExhaustedError: If every key failed. The last error is chained.
        """
        total = len(self._keys)
        start = self._get_start_index()
        last_error: Exception | None = None
        for attempt in range(total):
            index = (start + attempt) % total
            try:
                return await operation(self._keys[index])
            except Exception as exc:
                last_error = exc
                self.logging.warning(
                    "Attempt with credential at index %d failed (%d/%d): %s",
                    index, attempt + 1, total, exc,
                )
        raise CredentialPoolExhaustedError(
            f"All {total} credentials failed."
        ) from last_error
