"""로컬 미디어 획득 모듈.

세션이 통화를 시작할 때 사용할 로컬 미디어 스트림을 획득/해제합니다.
실제 구현은 aiortc의 MediaPlayer(파일, 장치, 스트림 URL)를 사용합니다.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from aiortc.contrib.media import MediaPlayer

from ..shared.errors import ResourceError

logger = logging.getLogger(__name__)


@dataclass
class LocalStream:
    """획득한 로컬 미디어 스트림.

    Attributes:
        tracks (List): 세션에 추가할 MediaStreamTrack 목록
        source (Any): 트랙을 생성한 원본 객체 (MediaPlayer 등)
    """
    tracks: List[Any] = field(default_factory=list)
    source: Any = None


class MediaProvider(Protocol):
    """세션이 의존하는 미디어 획득 기능."""

    async def acquire_local_stream(self, constraints: dict) -> LocalStream: ...

    async def release_stream(self, stream: LocalStream) -> None: ...


class MediaPlayerProvider:
    """aiortc MediaPlayer 기반 MediaProvider.

    Args:
        source: 미디어 파일 경로, 장치 경로(/dev/video0) 또는 스트림 URL
        media_format: ffmpeg 입력 포맷 (예: "v4l2", "avfoundation", "pulse")
        options: ffmpeg 입력 옵션 (예: {"video_size": "640x480"})

    Examples:
        >>> provider = MediaPlayerProvider("/dev/video0", media_format="v4l2")
        >>> stream = await provider.acquire_local_stream({"video": True, "audio": False})
        >>> await provider.release_stream(stream)
    """

    def __init__(self, source: str, media_format: Optional[str] = None, options: Optional[dict] = None):
        self.source = source
        self.media_format = media_format
        self.options = options or {}

    async def acquire_local_stream(self, constraints: dict) -> LocalStream:
        """constraints에 맞는 로컬 트랙을 엽니다.

        Args:
            constraints: {"audio": bool, "video": bool}. 생략된 키는 True로 간주

        Raises:
            ResourceError: 장치/파일을 열 수 없거나 요청한 트랙이 하나도 없는 경우
        """
        try:
            player = MediaPlayer(self.source, format=self.media_format, options=self.options)
        except Exception as e:
            logger.error(f"[WebRTC] 미디어 소스 열기 실패: {self.source} ({e})")
            raise ResourceError(f"cannot open media source {self.source!r}: {e}") from e

        tracks = []
        if constraints.get("audio", True) and player.audio is not None:
            tracks.append(player.audio)
        if constraints.get("video", True) and player.video is not None:
            tracks.append(player.video)

        if not tracks:
            await self.release_stream(LocalStream(tracks=[t for t in (player.audio, player.video) if t], source=player))
            raise ResourceError(f"media source {self.source!r} has no track matching {constraints}")

        logger.info(f"[WebRTC] 로컬 미디어 획득: {[t.kind for t in tracks]}")
        return LocalStream(tracks=tracks, source=player)

    async def release_stream(self, stream: LocalStream) -> None:
        for track in stream.tracks:
            track.stop()
        logger.info("[WebRTC] 로컬 미디어 해제")
