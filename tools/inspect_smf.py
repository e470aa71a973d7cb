from __future__ import annotations

import argparse
import sys

from midiosc.clock import RecordingClock
from midiosc.errors import MidiOscError
from midiosc.message_filter import FORWARD, TEMPO
from midiosc.midi_file import load_smf
from midiosc.osc_out import VirtualSink
from midiosc.player import ReplayDriver


def main():
    ap = argparse.ArgumentParser(description="Print what a MIDI file would send over OSC, with computed delays")
    ap.add_argument("file", help="Path to the MIDI file")
    ap.add_argument("--merge-tracks", action="store_true")
    ap.add_argument("--all", action="store_true", help="Also list ignored events")
    args = ap.parse_args()

    try:
        smf = load_smf(args.file)
        drv = ReplayDriver(VirtualSink(), clock=RecordingClock(), merge_tracks=args.merge_tracks)
        drv.load(smf)
        print(f"timing: {smf.timing}  tracks: {len(smf.tracks)}")
        for ti, ei, delta, res in drv.events():
            at_ms = drv.metrics["waited_us"] / 1000.0
            if res.kind == FORWARD:
                m = res.message
                print(f"{at_ms:12.3f}ms  trk {ti:2d} #{ei:<5d} +{delta:<5d} /midi {m.channel:2d} {m.status:02X} {m.data1:02X} {m.data2:02X}")
            elif res.kind == TEMPO:
                print(f"{at_ms:12.3f}ms  trk {ti:2d} #{ei:<5d} +{delta:<5d} tempo {res.tempo} us/beat")
            elif args.all:
                print(f"{at_ms:12.3f}ms  trk {ti:2d} #{ei:<5d} +{delta:<5d} ({res.reason})")
    except MidiOscError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    m = drv.get_metrics()
    print(f"events={m['events']} forwardable={m['msgs_sent']} dropped={m['dropped_length']} ignored={m['ignored']} total={m['waited_us'] / 1e6:.3f}s")


if __name__ == "__main__":
    main()
