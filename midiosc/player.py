from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from midiosc.clock import BlockingClock
from midiosc.errors import TransportError
from midiosc.message_filter import FORWARD, TEMPO, Classification, ForwardableMessage, classify
from midiosc.midi_file import SmfFile, iter_events, merged_tracks
from midiosc.osc_out import MessageSink
from midiosc.tempo_map import TempoTracker


log = logging.getLogger(__name__)

IDLE = "idle"
ITERATING = "iterating"
DONE = "done"

Step = Tuple[int, int, int, Classification]


class ReplayDriver:
    """Replays a decoded MIDI file in real time (no look-ahead).

    - Events are processed strictly in file order, one at a time.
    - Per event: apply tempo, wait for the delta, then forward if 3 bytes.
    - A zero delta never waits, so zero-delta events fire back to back.
    - Tracks play one after another unless merge_tracks is set, in which case
      all tracks are merged into a single stream ordered by absolute tick.
    - Send failures are logged and counted; playback continues.
    """

    def __init__(self, sink: MessageSink, clock=None, merge_tracks: bool = False) -> None:
        self.sink = sink
        self.clock = clock if clock is not None else BlockingClock()
        self.merge_tracks = merge_tracks
        self.tempo = TempoTracker()
        self.state: str = IDLE
        self.track_index: int = 0
        self.event_index: int = 0
        self._tracks: List[Any] = []
        self.metrics: Dict[str, int] = {}
        self._reset_metrics()

    def _reset_metrics(self) -> None:
        self.metrics = {
            "events": 0,
            "msgs_sent": 0,
            "send_errors": 0,
            "dropped_length": 0,
            "ignored": 0,
            "tempo_changes": 0,
            "waited_us": 0,
        }

    # --- Public control ---
    def load(self, smf: SmfFile) -> None:
        """Configure timing from the header and move to ITERATING.

        Raises TimingError when the header resolution is unusable.
        """
        tempo = TempoTracker()
        tempo.configure(smf.timing)
        self.tempo = tempo
        self._tracks = merged_tracks(smf) if self.merge_tracks else list(smf.tracks)
        self.track_index = 0
        self.event_index = 0
        self._reset_metrics()
        self.state = ITERATING

    def events(self) -> Iterator[Step]:
        """Process every event, yielding (track, index, delta, classification) after each."""
        if self.state != ITERATING:
            raise RuntimeError(f"cannot play from state {self.state!r}; call load() first")
        for ti, track in enumerate(self._tracks):
            self.track_index = ti
            log.debug("track %d: %d events", ti, len(track))
            for ei, (delta, msg) in enumerate(iter_events(track)):
                self.event_index = ei
                yield ti, ei, delta, self._step(delta, msg)
        self.state = DONE

    def play(self) -> Dict[str, Any]:
        for _ in self.events():
            pass
        log.info("playback done: %d events, %d sent, %d send errors",
                 self.metrics["events"], self.metrics["msgs_sent"], self.metrics["send_errors"])
        return self.get_metrics()

    def get_metrics(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.metrics)
        out["state"] = self.state
        out["track"] = self.track_index
        out["bpm"] = self.tempo.bpm
        if hasattr(self.clock, "get_metrics"):
            out.update(self.clock.get_metrics())
        return out

    # --- Internals ---
    def _step(self, delta: int, msg) -> Classification:
        self.metrics["events"] += 1
        result = classify(msg)
        # Tempo first so the new value governs this event's own delta
        if result.kind == TEMPO:
            self.tempo.observe_tempo(result.tempo)
            self.metrics["tempo_changes"] += 1
            log.info("microseconds per beat: %d", result.tempo)
        if delta != 0:
            delay = self.tempo.delay_for(delta)
            self.clock.wait(delay)
            self.metrics["waited_us"] += delay
        if result.kind == FORWARD:
            self._dispatch(result.message)
        elif result.reason == "length":
            self.metrics["dropped_length"] += 1
        elif result.kind != TEMPO:
            self.metrics["ignored"] += 1
        return result

    def _dispatch(self, message: Optional[ForwardableMessage]) -> None:
        if message is None:
            return
        try:
            self.sink.send(message)
        except TransportError as e:
            self.metrics["send_errors"] += 1
            log.warning("error: %s", e)
            return
        self.metrics["msgs_sent"] += 1
