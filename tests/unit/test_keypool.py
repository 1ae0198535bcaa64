"""Tests for the LLM key pool."""

import pytest

from flowdeploy_engine.common.exceptions import ConfigurationError
from flowdeploy_engine.credentials.keypool import LLMKeyPool


def test_round_robin():
    pool = LLMKeyPool(["sk-aaaaaaaaaaaa", "sk-bbbbbbbbbbbb", "sk-cccccccccccc"])
    keys = [pool.next_key().key for _ in range(4)]
    assert keys == ["sk-aaaaaaaaaaaa", "sk-bbbbbbbbbbbb", "sk-cccccccccccc", "sk-aaaaaaaaaaaa"]


def test_ref_hides_key():
    pooled = LLMKeyPool(["sk-proj-0123456789abcdef"]).next_key()
    assert pooled.ref == "sk-proj-01..."
    assert "abcdef" not in pooled.ref


def test_blank_keys_dropped():
    pool = LLMKeyPool(["", "sk-only", ""])
    assert len(pool) == 1


def test_empty_pool_raises():
    pool = LLMKeyPool([])
    assert len(pool) == 0
    with pytest.raises(ConfigurationError):
        pool.next_key()
