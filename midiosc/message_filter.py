from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger(__name__)

TEMPO = "tempo"
FORWARD = "forward"
IGNORE = "ignore"

# Channel voice messages and song position are the only 3-byte live encodings
SHORT_MESSAGE_LEN = 3


@dataclass(frozen=True)
class ForwardableMessage:
    channel: int
    status: int
    data1: int
    data2: int

    def as_tuple(self):
        return (self.channel, self.status, self.data1, self.data2)


@dataclass(frozen=True)
class Classification:
    kind: str
    tempo: Optional[int] = None
    message: Optional[ForwardableMessage] = None
    reason: str = ""


def classify(msg) -> Classification:
    """Sort a decoded event into tempo / forwardable / ignored.

    Meta and sysex events are never forwarded but still count for timing.
    Live events are forwarded only when they encode to exactly 3 bytes.
    """
    if msg.is_meta:
        if msg.type == "set_tempo":
            return Classification(TEMPO, tempo=int(msg.tempo))
        return Classification(IGNORE, reason="meta")
    if msg.type == "sysex":
        return Classification(IGNORE, reason="sysex")

    data = msg.bytes()
    if len(data) != SHORT_MESSAGE_LEN:
        log.debug("buffer len: %d (%s); not forwarded", len(data), msg.type)
        return Classification(IGNORE, reason="length")

    channel = getattr(msg, "channel", None)
    port = int(channel) if channel is not None else 0
    return Classification(FORWARD, message=ForwardableMessage(port, data[0], data[1], data[2]))


def to_forwardable(msg) -> Optional[ForwardableMessage]:
    return classify(msg).message
