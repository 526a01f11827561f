"""CandidateQueue 테스트."""

import asyncio

import pytest

from modules.webrtc import CandidateQueue, TransportError


class Applier:
    def __init__(self, delay: float = 0, reject=()):
        self.applied = []
        self.delay = delay
        self.reject = list(reject)

    async def __call__(self, candidate):
        if self.delay:
            await asyncio.sleep(self.delay)
        if candidate in self.reject:
            raise RuntimeError(f"rejected {candidate}")
        self.applied.append(candidate)


@pytest.mark.asyncio
async def test_flush_without_remote_description_is_noop():
    queue = CandidateQueue()
    queue.enqueue({"candidate": "a"})
    apply = Applier()

    assert await queue.flush(apply, ready=False) == 0
    assert apply.applied == []
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_flush_applies_in_fifo_order_and_empties_queue():
    queue = CandidateQueue()
    items = [{"candidate": str(i)} for i in range(5)]
    for item in items:
        queue.enqueue(item)
    apply = Applier()

    assert await queue.flush(apply, ready=True) == 5
    assert apply.applied == items
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_second_flush_is_noop():
    queue = CandidateQueue()
    queue.enqueue({"candidate": "a"})
    apply = Applier()

    await queue.flush(apply, ready=True)
    assert await queue.flush(apply, ready=True) == 0
    assert apply.applied == [{"candidate": "a"}]


@pytest.mark.asyncio
async def test_concurrent_flushes_apply_each_candidate_once_in_order():
    queue = CandidateQueue()
    items = [{"candidate": str(i)} for i in range(6)]
    for item in items[:3]:
        queue.enqueue(item)
    apply = Applier(delay=0.001)

    first = asyncio.create_task(queue.flush(apply, ready=True))
    await asyncio.sleep(0)
    for item in items[3:]:
        queue.enqueue(item)
    second = asyncio.create_task(queue.flush(apply, ready=True))
    await asyncio.gather(first, second)

    assert apply.applied == items


@pytest.mark.asyncio
async def test_rejected_candidate_does_not_block_the_rest():
    queue = CandidateQueue()
    good_a, bad, good_b = {"candidate": "a"}, {"candidate": "bad"}, {"candidate": "b"}
    for item in (good_a, bad, good_b):
        queue.enqueue(item)
    apply = Applier(reject=[bad])

    with pytest.raises(TransportError):
        await queue.flush(apply, ready=True)

    assert apply.applied == [good_a, good_b]
    assert len(queue) == 0


def test_clear_drops_buffered_candidates():
    queue = CandidateQueue()
    queue.enqueue({"candidate": "a"})
    queue.clear()
    assert len(queue) == 0
