"""Shared wire message definitions and errors used by both the relay and the peer client.

Only lightweight, common data models should live here. Do not place
transport or engine logic (e.g., aiortc, FastAPI) in this package.
"""

from . import dto
from .dto import (
    SessionDescription,
    IceCandidate,
    OfferPayload,
    AnswerPayload,
    IceCandidatePayload,
    make_message,
    parse_room_id,
    validate_relay_payload,
)
from .errors import (
    SignalingError,
    ProtocolViolation,
    UnknownRoom,
    UnknownSender,
    TransportError,
    ResourceError,
    NegotiationTimeout,
)

__all__ = [
    "dto",
    "SessionDescription",
    "IceCandidate",
    "OfferPayload",
    "AnswerPayload",
    "IceCandidatePayload",
    "make_message",
    "parse_room_id",
    "validate_relay_payload",
    "SignalingError",
    "ProtocolViolation",
    "UnknownRoom",
    "UnknownSender",
    "TransportError",
    "ResourceError",
    "NegotiationTimeout",
]
