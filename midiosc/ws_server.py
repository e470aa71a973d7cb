from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Optional


log = logging.getLogger(__name__)


def metrics_payload(driver) -> dict:
    return {
        "type": "metrics",
        "ts": asyncio.get_running_loop().time(),
        "payload": driver.get_metrics(),
    }


async def _metrics_task(websocket, driver, interval: float):
    while True:
        await websocket.send(json.dumps(metrics_payload(driver)))
        await asyncio.sleep(interval)


async def _handler(websocket, driver, interval: float):
    task = asyncio.create_task(_metrics_task(websocket, driver, interval))
    try:
        async for _ in websocket:
            pass
    finally:
        task.cancel()


async def serve_ws(driver, host: str = "127.0.0.1", port: int = 8765, interval: float = 1.0):
    """Serve playback metrics to every connected client until cancelled."""
    import websockets

    async def handler(ws):
        try:
            await _handler(ws, driver, interval)
        except websockets.ConnectionClosed:
            pass

    async with websockets.serve(handler, host, port):
        log.info("serving metrics on ws://%s:%d", host, port)
        await asyncio.Future()


def start_ws_server(driver, host: str = "127.0.0.1", port: int = 8765, interval: float = 1.0) -> Optional[threading.Thread]:
    """Start the metrics server in a daemon thread; playback stays on the caller's thread."""

    def _runner():
        asyncio.run(serve_ws(driver, host, port, interval))

    th = threading.Thread(target=_runner, name="midiosc-ws", daemon=True)
    th.start()
    return th
