"""pytest 공용 fixture와 테스트 더블.

FakeEngine: TransportEngine 대체 (실제 네트워크/aiortc 없이 상태 머신 검증)
FakeMediaProvider: MediaProvider 대체
Recorder: RelayService 연결 sender 대체 (수신 메시지 기록)
"""

import asyncio
from typing import List, Optional

import pytest

from modules.relay import RelayService, RoomRegistry
from modules.webrtc import LocalStream, NegotiationSession, ResourceError


class FakeEngine:
    """메모리 내 TransportEngine.

    Attributes:
        fail (set): 실패시킬 연산 이름
        gates (dict): 연산 이름 → asyncio.Event. 설정되면 이벤트가 set될 때까지 대기
        applied (list): 적용된 원격 candidate (원격 디스크립션 없이 적용하면 예외)
    """

    def __init__(self, name: str = "engine"):
        self.name = name
        self.on_local_candidate = None
        self.on_track = None
        self.on_connection_state_change = None
        self.local: Optional[dict] = None
        self.remote: Optional[dict] = None
        self.applied: List[dict] = []
        self.tracks: list = []
        self.calls: List[str] = []
        self.fail: set = set()
        self.gates: dict = {}
        self.closed = False

    @property
    def local_description(self) -> Optional[dict]:
        return self.local

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.fail:
            raise RuntimeError(f"{name} rejected")

    async def create_local_offer(self) -> dict:
        await self._step("create_local_offer")
        return {"sdp": f"{self.name}-offer", "type": "offer"}

    async def create_local_answer(self) -> dict:
        await self._step("create_local_answer")
        return {"sdp": f"{self.name}-answer", "type": "answer"}

    async def set_local_description(self, description: dict) -> None:
        await self._step("set_local_description")
        self.local = description

    async def set_remote_description(self, description: dict) -> None:
        await self._step("set_remote_description")
        self.remote = description

    async def add_remote_candidate(self, candidate: dict) -> None:
        await self._step("add_remote_candidate")
        if self.remote is None:
            raise RuntimeError("candidate applied before remote description")
        if candidate.get("candidate") == "bad":
            raise RuntimeError("malformed candidate")
        self.applied.append(candidate)

    def add_track(self, track) -> None:
        self.tracks.append(track)

    async def close(self) -> None:
        self.closed = True

    async def emit_local_candidate(self, candidate: dict) -> None:
        await self.on_local_candidate(candidate)

    async def emit_connection_state(self, state: str) -> None:
        await self.on_connection_state_change(state)


class FakeMediaProvider:
    def __init__(self, fail: bool = False, gate: Optional[asyncio.Event] = None):
        self.fail = fail
        self.gate = gate
        self.acquired: List[LocalStream] = []
        self.released: List[LocalStream] = []

    async def acquire_local_stream(self, constraints: dict) -> LocalStream:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ResourceError("permission denied")
        stream = LocalStream(tracks=["audio-track", "video-track"], source=constraints)
        self.acquired.append(stream)
        return stream

    async def release_stream(self, stream: LocalStream) -> None:
        self.released.append(stream)


class Recorder:
    """RelayService에 등록하는 sender. 받은 메시지를 순서대로 기록합니다."""

    def __init__(self):
        self.messages: List[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)

    def of_type(self, event: str) -> List[dict]:
        return [m for m in self.messages if m["type"] == event]


class SentMessages:
    """NegotiationSession send 콜백. (event, payload)를 기록합니다."""

    def __init__(self):
        self.items: List[tuple] = []

    async def __call__(self, event: str, payload: dict) -> None:
        self.items.append((event, payload))

    def events(self) -> List[str]:
        return [event for event, _ in self.items]


def candidate(n: int) -> dict:
    return {"candidate": f"candidate:{n} 1 udp 2122260223 10.0.0.{n} 5000{n} typ host", "sdpMid": "0", "sdpMLineIndex": 0}


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """predicate가 참이 될 때까지 이벤트 루프를 양보합니다."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def sent():
    return SentMessages()


@pytest.fixture
def session(engine, sent):
    return NegotiationSession("r1", engine, sent)


@pytest.fixture
def relay():
    return RelayService(RoomRegistry())
