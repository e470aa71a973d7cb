from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

import mido

from midiosc.errors import MidiFileError


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Metrical:
    ticks_per_beat: int


@dataclass(frozen=True)
class Timecode:
    fps: int
    subframes: int


Timing = Union[Metrical, Timecode]
TimedEvent = Tuple[int, mido.Message]


@dataclass
class SmfFile:
    """A decoded Standard MIDI File: header timing plus tracks in file order."""

    timing: Timing
    tracks: List[mido.MidiTrack] = field(default_factory=list)
    type: int = 1
    path: Optional[str] = None


def timing_from_division(division: int) -> Timing:
    """Map the header's 16-bit division word to metrical or timecode timing.

    mido unpacks the word as signed, so a timecode header shows up negative.
    The high byte holds -fps (two's complement), the low byte subframes per frame.
    """
    raw = int(division) & 0xFFFF
    if raw & 0x8000:
        fps = 256 - (raw >> 8)
        return Timecode(fps=fps, subframes=raw & 0xFF)
    return Metrical(ticks_per_beat=raw)


def from_midifile(mid: mido.MidiFile, path: Optional[str] = None) -> SmfFile:
    return SmfFile(
        timing=timing_from_division(mid.ticks_per_beat),
        tracks=list(mid.tracks),
        type=int(mid.type),
        path=path,
    )


def load_smf(path: str) -> SmfFile:
    """Read and parse a MIDI file; any failure is fatal for playback."""
    try:
        mid = mido.MidiFile(path)
    except FileNotFoundError as e:
        raise MidiFileError(f"MIDI file not found: {path}") from e
    except (OSError, EOFError, ValueError, KeyError, IndexError) as e:
        raise MidiFileError(f"cannot parse MIDI file {path}: {e}") from e
    smf = from_midifile(mid, path=path)
    log.info("midi file has %d tracks (type %d)", len(smf.tracks), smf.type)
    if isinstance(smf.timing, Metrical):
        log.info("metrical timing: %d ticks per beat", smf.timing.ticks_per_beat)
    else:
        log.info("timecode timing, fps: %d; subframes: %d", smf.timing.fps, smf.timing.subframes)
    return smf


def iter_events(track) -> Iterator[TimedEvent]:
    for msg in track:
        yield int(msg.time), msg


def merged_tracks(smf: SmfFile) -> List[mido.MidiTrack]:
    """All tracks as a single stream ordered by absolute tick.

    Ties keep track order (track 0 first), so conductor-track tempo changes
    apply before notes at the same position.
    """
    if not smf.tracks:
        return []
    return [mido.merge_tracks(smf.tracks)]
