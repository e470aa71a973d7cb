from __future__ import annotations

import logging
import socket
from typing import List, Optional, Set, Tuple

from pythonosc.osc_message_builder import BuildError, OscMessageBuilder

from midiosc.errors import TransportError
from midiosc.message_filter import ForwardableMessage


log = logging.getLogger(__name__)

OSC_ADDRESS = "/midi"
DEFAULT_HOST = "0.0.0.0"

Address = Tuple[str, int]


class MessageSink:
    """Abstract sink interface used by ReplayDriver."""

    def send(self, message: ForwardableMessage) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def panic(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface
        pass


def panic_messages() -> List[ForwardableMessage]:
    """Sustain off, All Sound Off (120) and All Notes Off (123) on every channel."""
    out: List[ForwardableMessage] = []
    for ch in range(16):
        status = 0xB0 | ch
        for control in (64, 120, 123):
            out.append(ForwardableMessage(ch, status, control, 0))
    return out


def encode_midi_packet(message: ForwardableMessage, address: str = OSC_ADDRESS) -> bytes:
    """Encode one message as `/midi ,m` with (port, status, data1, data2)."""
    builder = OscMessageBuilder(address=address)
    builder.add_arg(message.as_tuple(), arg_type=OscMessageBuilder.ARG_TYPE_MIDI)
    try:
        return builder.build().dgram
    except BuildError as e:
        raise TransportError(f"cannot encode {message}: {e}") from e


class OscUdpSink(MessageSink):
    def __init__(self, to: Address, sender: Optional[int] = None, address: str = OSC_ADDRESS):
        self.to = (str(to[0]), int(to[1]))
        self.address = address
        bind_addr = (DEFAULT_HOST, int(sender or 0))
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self.sock.bind(bind_addr)
            self.sock.setblocking(True)
        except OSError as e:
            self.sock.close()
            raise TransportError(f"cannot bind UDP socket to {bind_addr[0]}:{bind_addr[1]}: {e}") from e
        log.info("osc sender bound to %s:%d, sending to %s:%d", *self.local_address, *self.to)

    @property
    def local_address(self) -> Address:
        host, port = self.sock.getsockname()[:2]
        return host, port

    def send(self, message: ForwardableMessage) -> None:
        dgram = encode_midi_packet(message, self.address)
        try:
            self.sock.sendto(dgram, self.to)
        except OSError as e:
            raise TransportError(f"send to {self.to[0]}:{self.to[1]} failed: {e}") from e
        log.debug("send: %s; to: %s:%d", message, *self.to)

    def panic(self) -> None:
        for msg in panic_messages():
            try:
                self.send(msg)
            except TransportError as e:
                log.warning("panic: %s", e)

    def close(self) -> None:
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *_exc):
        self.close()


class VirtualSink(MessageSink):
    """A minimal sink capturing messages for tests and dry runs.

    Sends whose index (0-based attempt count) is in `fail_on` raise TransportError.
    """

    def __init__(self, fail_on: Optional[Set[int]] = None) -> None:
        self.messages: List[ForwardableMessage] = []
        self.attempts: List[ForwardableMessage] = []
        self.fail_on: Set[int] = set(fail_on or ())
        self.panics = 0

    def send(self, message: ForwardableMessage) -> None:
        index = len(self.attempts)
        self.attempts.append(message)
        if index in self.fail_on:
            raise TransportError(f"simulated send failure #{index}")
        self.messages.append(message)

    def panic(self) -> None:
        self.panics += 1
        self.messages.extend(panic_messages())
