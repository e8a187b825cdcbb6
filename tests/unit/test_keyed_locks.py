from __future__ import annotations

import asyncio

from orchestrator.app.core.locks import KeyedLocks


def test_same_key_is_serialized_and_released() -> None:
    locks = KeyedLocks()
    trace: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("job-1"):
            trace.append(f"{name}:in")
            await asyncio.sleep(0.01)
            trace.append(f"{name}:out")

    async def _run() -> None:
        await asyncio.gather(worker("a"), worker("b"))

    asyncio.run(_run())
    assert trace == ["a:in", "a:out", "b:in", "b:out"]
    assert len(locks) == 0


def test_different_keys_do_not_block_each_other() -> None:
    locks = KeyedLocks()
    trace: list[str] = []

    async def worker(key: str) -> None:
        async with locks.hold(key):
            trace.append(f"{key}:in")
            await asyncio.sleep(0.01)
            trace.append(f"{key}:out")

    async def _run() -> None:
        await asyncio.gather(worker("job-1"), worker("job-2"))

    asyncio.run(_run())
    assert trace[:2] == ["job-1:in", "job-2:in"]
    assert len(locks) == 0


def test_lock_released_when_body_raises() -> None:
    locks = KeyedLocks()

    async def _run() -> None:
        try:
            async with locks.hold("job-1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        async with locks.hold("job-1"):
            assert len(locks) == 1

    asyncio.run(_run())
    assert len(locks) == 0
