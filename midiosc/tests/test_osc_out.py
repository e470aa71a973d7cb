import socket
import unittest

from pythonosc.osc_message import OscMessage

from midiosc.errors import TransportError
from midiosc.message_filter import ForwardableMessage
from midiosc.osc_out import OscUdpSink, VirtualSink, encode_midi_packet, panic_messages


def _receiver():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.bind(("127.0.0.1", 0))
    s.settimeout(2.0)
    return s


class TestOscOut(unittest.TestCase):
    def test_encode_midi_packet(self):
        dgram = encode_midi_packet(ForwardableMessage(2, 0x92, 60, 100))
        self.assertEqual(dgram, b"/midi\x00\x00\x00,m\x00\x00" + bytes([2, 0x92, 60, 100]))
        msg = OscMessage(dgram)
        self.assertEqual(msg.address, "/midi")
        self.assertEqual(tuple(msg.params[0]), (2, 0x92, 60, 100))

    def test_send_one_datagram_per_message(self):
        rx = _receiver()
        self.addCleanup(rx.close)
        with OscUdpSink(("127.0.0.1", rx.getsockname()[1])) as sink:
            sink.send(ForwardableMessage(0, 0x90, 60, 100))
            sink.send(ForwardableMessage(0, 0x80, 60, 0))
            got = [OscMessage(rx.recvfrom(1024)[0]) for _ in range(2)]
        self.assertEqual([tuple(m.params[0]) for m in got], [(0, 0x90, 60, 100), (0, 0x80, 60, 0)])

    def test_sender_port_is_bound(self):
        rx = _receiver()
        self.addCleanup(rx.close)
        probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        probe.bind(("0.0.0.0", 0))
        port = probe.getsockname()[1]
        probe.close()
        with OscUdpSink(("127.0.0.1", rx.getsockname()[1]), sender=port) as sink:
            self.assertEqual(sink.local_address[1], port)
            sink.send(ForwardableMessage(1, 0xB1, 7, 127))
            _, src = rx.recvfrom(1024)
        self.assertEqual(src[1], port)

    def test_bind_failure(self):
        taken = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        taken.bind(("0.0.0.0", 0))
        self.addCleanup(taken.close)
        with self.assertRaises(TransportError):
            OscUdpSink(("127.0.0.1", 9000), sender=taken.getsockname()[1])

    def test_send_failure_raises_transport_error(self):
        with OscUdpSink(("256.0.0.1", 9000)) as sink:
            with self.assertRaises(TransportError):
                sink.send(ForwardableMessage(0, 0x90, 60, 100))

    def test_panic(self):
        msgs = panic_messages()
        self.assertEqual(len(msgs), 48)
        self.assertIn(ForwardableMessage(9, 0xB9, 123, 0), msgs)
        sink = VirtualSink()
        sink.panic()
        self.assertEqual(sink.panics, 1)
        self.assertEqual(sink.messages, msgs)

    def test_virtual_sink_failures(self):
        sink = VirtualSink(fail_on={0})
        with self.assertRaises(TransportError):
            sink.send(ForwardableMessage(0, 0x90, 1, 1))
        sink.send(ForwardableMessage(0, 0x90, 2, 1))
        self.assertEqual(len(sink.attempts), 2)
        self.assertEqual([m.data1 for m in sink.messages], [2])


if __name__ == "__main__":
    unittest.main()
