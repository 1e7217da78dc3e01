import asyncio
import uuid

from gigpack.services.locks import GigLockRegistry


async def test_same_gig_runs_one_at_a_time():
    registry = GigLockRegistry()
    gig_id = uuid.uuid4()
    events: list[str] = []

    async def work(name: str) -> None:
        async with registry.hold(gig_id):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(work("a"), work("b"))

    assert events == ["a:start", "a:end", "b:start", "b:end"]


async def test_different_gigs_do_not_wait_on_each_other():
    registry = GigLockRegistry()
    events: list[str] = []

    async def work(name: str, gig_id: uuid.UUID) -> None:
        async with registry.hold(gig_id):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(work("a", uuid.uuid4()), work("b", uuid.uuid4()))

    assert events[:2] == ["a:start", "b:start"]


async def test_registry_drops_idle_locks():
    registry = GigLockRegistry()
    gig_id = uuid.uuid4()

    async with registry.hold(gig_id):
        assert registry.is_locked(gig_id)
        assert len(registry) == 1

    assert not registry.is_locked(gig_id)
    assert len(registry) == 0


async def test_lock_is_released_when_body_raises():
    registry = GigLockRegistry()
    gig_id = uuid.uuid4()

    try:
        async with registry.hold(gig_id):
            raise ValueError("boom")
    except ValueError:
        pass

    assert len(registry) == 0
    async with registry.hold(gig_id):
        assert registry.is_locked(gig_id)
