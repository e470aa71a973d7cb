from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from midiosc.clock import BlockingClock, RecordingClock
from midiosc.errors import MidiOscError
from midiosc.midi_file import load_smf
from midiosc.osc_out import DEFAULT_HOST, OscUdpSink, VirtualSink
from midiosc.player import ReplayDriver
from midiosc.ws_server import start_ws_server


log = logging.getLogger("midiosc")

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class PlayerConfig:
    file: str
    to: int
    sender: Optional[int] = None
    host: str = DEFAULT_HOST
    log_level: str = "warning"
    merge_tracks: bool = False
    dry_run: bool = False
    panic_on_exit: bool = False
    metrics: bool = False
    ws: bool = False
    ws_port: int = 8765

    def validate(self) -> None:
        if not self.file:
            raise ValueError("a MIDI file is required")
        if not (1 <= int(self.to) <= 65535):
            raise ValueError(f"destination port out of range: {self.to}")
        if self.sender is not None and not (0 <= int(self.sender) <= 65535):
            raise ValueError(f"sender port out of range: {self.sender}")
        if not (1 <= int(self.ws_port) <= 65535):
            raise ValueError(f"ws port out of range: {self.ws_port}")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"unknown log level: {self.log_level}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "PlayerConfig":
        cfg = cls(
            file=args.file,
            to=args.to,
            sender=args.sender,
            host=args.host,
            log_level=args.log_level,
            merge_tracks=bool(args.merge_tracks),
            dry_run=bool(args.dry_run),
            panic_on_exit=bool(args.panic_on_exit),
            metrics=bool(args.metrics),
            ws=bool(args.ws),
            ws_port=args.ws_port,
        )
        cfg.validate()
        return cfg


def setup_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT, datefmt="%H:%M:%S")


def run_play(cfg: PlayerConfig) -> dict:
    """Load, then replay the file to the OSC destination. Fatal errors raise MidiOscError."""
    smf = load_smf(cfg.file)
    if cfg.dry_run:
        sink = VirtualSink()
        clock = RecordingClock()
    else:
        sink = OscUdpSink((cfg.host, cfg.to), sender=cfg.sender)
        clock = BlockingClock()

    done = threading.Event()
    try:
        driver = ReplayDriver(sink, clock=clock, merge_tracks=cfg.merge_tracks)
        driver.load(smf)

        def metrics_printer():
            while not done.wait(1.0):
                m = driver.get_metrics()
                print(f"[metrics] track={m['track']} sent={m['msgs_sent']} send_errors={m['send_errors']} dropped={m['dropped_length']} jitter_p95={m['jitterMsP95']}ms")

        if cfg.ws:
            start_ws_server(driver, port=cfg.ws_port)
        if cfg.metrics:
            threading.Thread(target=metrics_printer, daemon=True).start()

        started = time.monotonic()
        try:
            metrics = driver.play()
        except KeyboardInterrupt:
            if cfg.panic_on_exit:
                sink.panic()
            raise
        metrics["elapsed_s"] = round(time.monotonic() - started, 3)
        return metrics
    finally:
        done.set()
        sink.close()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="midiosc", description="Play a Standard MIDI File as OSC /midi messages over UDP")
    sub = ap.add_subparsers(dest="cmd", required=True)
    p = sub.add_parser("play", help="Play a MIDI file")
    p.add_argument("-f", "--file", required=True, metavar="MIDI_FILE", help="Path to the MIDI file to play")
    p.add_argument("-s", "--sender", type=int, metavar="OSC_FROM_PORT",
                   help="Local UDP port to bind; use if the receiver filters on source address (default: ephemeral)")
    p.add_argument("-t", "--to", "-p", "--port", dest="to", type=int, required=True, metavar="OSC_TO_PORT",
                   help="Destination UDP port")
    p.add_argument("--host", default=DEFAULT_HOST, help=f"Destination host (default: {DEFAULT_HOST})")
    p.add_argument("-l", "--log-level", default="warning", choices=LOG_LEVELS, help="Log level (default: warning)")
    p.add_argument("--merge-tracks", action="store_true", help="Merge all tracks by absolute time instead of playing them one after another")
    p.add_argument("--dry-run", action="store_true", help="Classify and time events without waiting or sending")
    p.add_argument("--panic-on-exit", action="store_true", help="Send All Notes Off on Ctrl+C")
    p.add_argument("--metrics", action="store_true", help="Print basic playback metrics once per second")
    p.add_argument("--ws", action="store_true", help="Start a local WS server broadcasting metrics")
    p.add_argument("--ws-port", type=int, default=8765, help="Port for --ws (default: 8765)")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    try:
        cfg = PlayerConfig.from_args(args)
    except ValueError as e:
        ap.error(str(e))
    setup_logging(cfg.log_level)

    try:
        metrics = run_play(cfg)
    except MidiOscError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.warning("interrupted")
        return 130
    if cfg.dry_run or cfg.metrics:
        print(f"[done] events={metrics['events']} sent={metrics['msgs_sent']} send_errors={metrics['send_errors']} "
              f"dropped={metrics['dropped_length']} waited={metrics['waited_us'] / 1e6:.3f}s elapsed={metrics['elapsed_s']}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
