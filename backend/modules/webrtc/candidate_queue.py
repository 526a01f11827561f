"""ICE candidate 버퍼 모듈.

원격 디스크립션이 설정되기 전에 도착한 ICE candidate를 도착 순서대로 보관했다가,
원격 디스크립션이 설정된 후 한 번씩만 적용합니다.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, List

from ..shared.errors import TransportError

logger = logging.getLogger(__name__)


class CandidateQueue:
    """세션 하나가 독점 소유하는 FIFO candidate 큐.

    Attributes:
        _items (Deque[dict]): 아직 적용되지 않은 candidate
        _flush_lock (asyncio.Lock): 동시 flush 직렬화용 락

    Note:
        - 각 candidate는 적용 직전에 큐에서 제거되므로 정확히 한 번만 적용됨
        - flush가 동시에 호출되어도 락으로 직렬화되어 순서가 보존됨
    """

    def __init__(self):
        self._items: Deque[dict] = deque()
        self._flush_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def enqueue(self, candidate: dict) -> None:
        """candidate를 큐 끝에 추가합니다."""
        self._items.append(candidate)

    def clear(self) -> None:
        self._items.clear()

    async def flush(
        self,
        apply: Callable[[dict], Awaitable[None]],
        ready: bool,
    ) -> int:
        """버퍼된 candidate를 FIFO 순서로 모두 적용합니다.

        Args:
            apply: candidate 하나를 엔진에 적용하는 코루틴 함수
            ready: 원격 디스크립션 설정 여부. False면 아무 작업도 하지 않음

        Returns:
            int: 이번 호출에서 적용을 시도한 candidate 수

        Raises:
            TransportError: 하나 이상의 candidate 적용이 실패한 경우.
                실패하더라도 나머지 candidate는 모두 적용을 시도한 뒤 예외를 발생시킴
        """
        if not ready:
            return 0

        applied = 0
        failures: List[Exception] = []
        async with self._flush_lock:
            while self._items:
                candidate = self._items.popleft()
                applied += 1
                try:
                    await apply(candidate)
                except Exception as e:
                    logger.error(f"[WebRTC] 버퍼된 ICE candidate 적용 실패: {e}")
                    failures.append(e)

        if applied:
            logger.debug(f"[WebRTC] 버퍼된 ICE candidate {applied}개 flush")
        if failures:
            raise TransportError(
                f"{len(failures)} of {applied} candidates rejected"
            ) from failures[0]
        return applied
