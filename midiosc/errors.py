from __future__ import annotations


class MidiOscError(Exception):
    """Base class for errors raised by midiosc."""


class MidiFileError(MidiOscError):
    """The MIDI file could not be read or parsed."""


class TimingError(MidiOscError):
    """The file's timing resolution cannot be used to compute delays."""


class TransportError(MidiOscError):
    """A UDP socket could not be bound, or a datagram could not be sent."""
