import asyncio
import logging
import random

import pytest

from shared.helper.CredentialPool import CredentialPool, CredentialPoolExhaustedError


LOGGER = logging.getLogger("rag_engine.tests")


def test_first_working_key_wins():
    pool = CredentialPool(["k1", "k2", "k3"], LOGGER, rng=random.Random(0))

    async def operation(key):
        return f"ok:{key}"

    result = asyncio.run(pool.try_each(operation))

    assert result.startswith("ok:k")


def test_falls_through_every_key_once():
    pool = CredentialPool(["k1", "k2", "k3"], LOGGER)
    tried = []

    async def operation(key):
        tried.append(key)
        if len(tried) < 3:
            raise RuntimeError("rate limited")
        return key

    result = asyncio.run(pool.try_each(operation))

    assert sorted(tried) == ["k1", "k2", "k3"]
    assert result == tried[-1]


def test_attempts_wrap_around_from_random_start():
    pool = CredentialPool(["k1", "k2", "k3"], LOGGER)
    pool._get_start_index = lambda: 2
    tried = []

    async def operation(key):
        tried.append(key)
        raise RuntimeError("down")

    with pytest.raises(CredentialPoolExhaustedError) as exc_info:
        asyncio.run(pool.try_each(operation))

    assert tried == ["k3", "k1", "k2"]
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_empty_keys_are_rejected():
    with pytest.raises(ValueError):
        CredentialPool(["", ""], LOGGER)
