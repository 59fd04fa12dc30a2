import asyncio

from recovery_server import RecoveryState


async def numbered(name, log, count=2):
    try:
        for i in range(count):
            log.append(f"{name}{i}")
            yield f"{name}{i}"
    finally:
        log.append(f"{name} closed")


async def next_of(body):
    return await body.__anext__()


def test_second_body_waits_for_the_first_to_finish():
    log = []

    async def run():
        state  = RecoveryState(device=None, filesystem=None)
        first  = state.one_at_a_time(numbered("a", log))
        second = state.one_at_a_time(numbered("b", log))

        assert await next_of(first) == "a0"
        waiting = asyncio.create_task(next_of(second))
        await asyncio.sleep(0.05)
        assert not waiting.done()
        assert state.lock.locked()

        assert [chunk async for chunk in first] == ["a1"]
        assert await waiting == "b0"
        await second.aclose()
        assert not state.lock.locked()

    asyncio.run(run())
    assert log == ["a0", "a1", "a closed", "b0", "b closed"]


def test_closing_a_body_early_releases_the_lock():
    log = []

    async def run():
        state = RecoveryState(device=None, filesystem=None)
        first = state.one_at_a_time(numbered("a", log, count=5))

        await next_of(first)
        assert state.lock.locked()
        await first.aclose()
        assert not state.lock.locked()

        second = state.one_at_a_time(numbered("b", log, count=1))
        assert [chunk async for chunk in second] == ["b0"]

    asyncio.run(run())
    assert log == ["a0", "a closed", "b0", "b closed"]
