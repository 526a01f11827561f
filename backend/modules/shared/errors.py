"""시그널링 예외 정의.

Relay 측 오류(UnknownRoom, UnknownSender)와 프로토콜 위반(ProtocolViolation)은
예상된 경쟁 상태이므로 로컬에서 복구(로그 후 무시)합니다.
TransportError, ResourceError, NegotiationTimeout은 호출자에게 전달됩니다.
"""


class SignalingError(Exception):
    """모든 시그널링 예외의 기본 클래스."""


class ProtocolViolation(SignalingError):
    """현재 시그널링 상태에서 허용되지 않는 메시지."""

    def __init__(self, operation: str, state):
        self.operation = operation
        self.state = state
        super().__init__(f"{operation} not allowed in state {state}")


class UnknownRoom(SignalingError):
    """등록되지 않은 룸으로 보낸 메시지."""


class UnknownSender(SignalingError):
    """룸 멤버가 아닌 연결이 보낸 메시지."""


class TransportError(SignalingError):
    """전송 협상 엔진이 디스크립션 또는 candidate를 거부함."""


class ResourceError(SignalingError):
    """미디어 획득 실패 (장치 없음, 권한 거부 등)."""


class NegotiationTimeout(SignalingError):
    """offer를 보낸 뒤 제한 시간 안에 answer를 받지 못함."""
