import asyncio
from concurrent.futures import ThreadPoolExecutor

from practicelab import providers
from practicelab.settings import settings


def test_completion_client_is_built_once_under_concurrent_first_use(monkeypatch):
    monkeypatch.setattr(settings, "llm_provider", "openai")
    asyncio.run(providers.close_providers())
    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            clients = list(pool.map(lambda _: providers.get_completion_client(), range(16)))
        assert len({id(c) for c in clients}) == 1
        assert providers._completion_client.cache_info().misses == 1
    finally:
        asyncio.run(providers.close_providers())
    assert providers._completion_client.cache_info().currsize == 0


def test_generation_guard_only_when_enabled(monkeypatch):
    monkeypatch.setattr(settings, "generation_lock_enabled", False)
    assert providers.get_generation_guard() is None
    monkeypatch.setattr(settings, "generation_lock_enabled", True)
    assert providers.get_generation_guard() is providers.get_generation_guard()
