from __future__ import annotations

import argparse

from midiosc.osc_out import DEFAULT_HOST, OscUdpSink


def main():
    ap = argparse.ArgumentParser(description="Send All Notes Off / All Sound Off as OSC /midi messages")
    ap.add_argument("--to", "--port", dest="to", type=int, required=True, help="Destination UDP port")
    ap.add_argument("--host", default=DEFAULT_HOST)
    ap.add_argument("--sender", type=int, help="Local UDP port to bind")
    args = ap.parse_args()
    with OscUdpSink((args.host, args.to), sender=args.sender) as sink:
        sink.panic()
    print("panic sent (CC64/120/123 on 16 channels)")


if __name__ == "__main__":
    main()
