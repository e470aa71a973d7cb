from __future__ import annotations

import asyncio
import contextlib
import json
import socket
import unittest

import mido

from midiosc.clock import RecordingClock
from midiosc.midi_file import Metrical, SmfFile
from midiosc.osc_out import VirtualSink
from midiosc.player import ReplayDriver
from midiosc.ws_server import serve_ws


def _free_port() -> int:
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    addr, port = s.getsockname()
    s.close()
    return port


async def _connect(url: str):
    import websockets

    for _ in range(50):
        try:
            return await websockets.connect(url)
        except OSError:
            await asyncio.sleep(0.05)
    raise RuntimeError("failed to connect to WS server")


class TestWSMetrics(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        smf = SmfFile(timing=Metrical(480), tracks=[mido.MidiTrack([
            mido.MetaMessage("set_tempo", tempo=500000),
            mido.Message("note_on", note=60, velocity=90, time=480),
        ])])
        self.driver = ReplayDriver(VirtualSink(), clock=RecordingClock())
        self.driver.load(smf)
        self.driver.play()
        self.port = _free_port()
        self.server_task = asyncio.create_task(serve_ws(self.driver, "127.0.0.1", self.port, interval=0.05))
        self.ws = await _connect(f"ws://127.0.0.1:{self.port}")

    async def asyncTearDown(self):
        with contextlib.suppress(Exception):
            await self.ws.close()
        self.server_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.server_task

    async def test_metrics_broadcast(self):
        msg = json.loads(await asyncio.wait_for(self.ws.recv(), timeout=2.0))
        self.assertEqual(msg["type"], "metrics")
        payload = msg["payload"]
        self.assertEqual(payload["state"], "done")
        self.assertEqual(payload["msgs_sent"], 1)
        self.assertEqual(payload["waited_us"], 480 * 1041)
        self.assertAlmostEqual(payload["bpm"], 120.0)


if __name__ == "__main__":
    unittest.main()
