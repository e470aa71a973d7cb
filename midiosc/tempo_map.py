from __future__ import annotations

import logging
from fractions import Fraction
from typing import Optional

import mido

from midiosc.errors import TimingError
from midiosc.midi_file import Metrical, Timecode, Timing


log = logging.getLogger(__name__)

# SMPTE rate 29 is 29.97 drop-frame
_TIMECODE_RATES = {24: Fraction(24), 25: Fraction(25), 29: Fraction(2997, 100), 30: Fraction(30)}


class TempoTracker:
    """Running tempo state for one playback.

    - ticks_per_beat is fixed once from the file header (0 for timecode files).
    - microseconds_per_beat starts at 0 and follows every tempo meta-event.
    - delay_for() uses integer microseconds-per-tick, truncated before scaling.
    """

    def __init__(self) -> None:
        self.ticks_per_beat: int = 0
        self.microseconds_per_beat: int = 0
        # Set only for timecode files; tempo does not apply there
        self.microseconds_per_tick: Optional[Fraction] = None
        self._warned_unknown = False

    def set_ticks_per_beat(self, value: int) -> None:
        value = int(value)
        if value < 0:
            raise TimingError(f"invalid ticks per beat: {value}")
        self.ticks_per_beat = value
        self.microseconds_per_tick = None

    def set_timecode(self, fps: int, subframes: int) -> None:
        """Fall back to SMPTE timing: a tick is 1/(fps*subframes) seconds."""
        rate = _TIMECODE_RATES.get(int(fps), Fraction(int(fps)))
        if rate <= 0 or subframes <= 0:
            raise TimingError(f"invalid timecode resolution: fps={fps} subframes={subframes}")
        self.ticks_per_beat = 0
        self.microseconds_per_tick = Fraction(1_000_000) / (rate * int(subframes))

    def configure(self, timing: Timing) -> None:
        if isinstance(timing, Metrical):
            if timing.ticks_per_beat <= 0:
                raise TimingError("header declares 0 ticks per beat; cannot convert ticks to time")
            self.set_ticks_per_beat(timing.ticks_per_beat)
        elif isinstance(timing, Timecode):
            self.set_timecode(timing.fps, timing.subframes)
        else:
            raise TimingError(f"unsupported timing: {timing!r}")

    def observe_tempo(self, microseconds_per_beat: int) -> None:
        self.microseconds_per_beat = int(microseconds_per_beat)
        # A known tempo re-arms the warning for a later explicit 0
        if self.microseconds_per_beat > 0:
            self._warned_unknown = False

    @property
    def bpm(self) -> Optional[float]:
        if self.microseconds_per_beat <= 0:
            return None
        return mido.tempo2bpm(self.microseconds_per_beat)

    def delay_for(self, delta_ticks: int) -> int:
        """Microseconds to wait for delta_ticks at the current tempo."""
        delta = int(delta_ticks)
        if delta <= 0:
            return 0
        if self.microseconds_per_tick is not None:
            # exact rational, floored once
            return int(delta * self.microseconds_per_tick)
        if self.ticks_per_beat <= 0:
            raise TimingError("ticks per beat is 0; cannot convert ticks to time")
        if self.microseconds_per_beat <= 0:
            if not self._warned_unknown:
                log.warning("tempo unknown (no tempo event yet or tempo 0); proceeding without delay")
                self._warned_unknown = True
            return 0
        return delta * (self.microseconds_per_beat // self.ticks_per_beat)
