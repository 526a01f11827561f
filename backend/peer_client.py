"""Command-line WebRTC peer for the signaling relay.

Connects to the relay, joins a room and negotiates a connection with the other
member through aiortc. Received media is consumed by a MediaBlackhole.

사용법:
    cd backend
    python peer_client.py --room r1                          # 응답 측 (offer 대기)
    python peer_client.py --room r1 --offer --media test.mp4 # 발신 측
"""

import argparse
import asyncio
import logging

from aiortc.contrib.media import MediaBlackhole

from modules.webrtc import (
    AiortcEngine,
    MediaPlayerProvider,
    NegotiationSession,
    SignalingClient,
    connection_config,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def run_peer(url: str, room_id: str, offer: bool, media_source: str = None, media_format: str = None):
    media = MediaPlayerProvider(media_source, media_format=media_format) if media_source else None
    sink = MediaBlackhole()

    def session_factory(room, send):
        session = NegotiationSession(
            room,
            AiortcEngine(),
            send,
            media=media,
            offer_timeout=connection_config.offer_timeout,
        )

        async def on_remote_track(track):
            logger.info(f"원격 {track.kind} 트랙 수신")
            sink.addTrack(track)
            await sink.start()

        async def on_connection_state(state):
            logger.info(f"연결 상태: {state}")

        session.on_remote_track = on_remote_track
        session.on_connection_state = on_connection_state
        return session

    client = SignalingClient(url, room_id, session_factory, auto_offer=offer)
    await client.connect()
    try:
        await client.join()
        await client.run()
    finally:
        await client.close()
        await sink.stop()


def main():
    parser = argparse.ArgumentParser(description="WebRTC signaling peer")
    parser.add_argument("--url", default="ws://localhost:5000/ws", help="Relay websocket URL")
    parser.add_argument("--room", required=True, help="Room to join")
    parser.add_argument(
        "--offer",
        action="store_true",
        help="Start the call if another member is already in the room when joining "
             "(the member that joins later sends the offer)"
    )
    parser.add_argument("--media", help="Media file, device or stream URL to send")
    parser.add_argument("--media-format", help="ffmpeg input format for --media (e.g. v4l2)")
    args = parser.parse_args()

    try:
        asyncio.run(run_peer(args.url, args.room, args.offer, args.media, args.media_format))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
