# tibber_pulse/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="tibber-pulse",
        description="Tibber Pulse SML input driver"
    )

    parser.add_argument(
        "--config",
        default="tibber_pulse.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress log output on stdout"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Continuous polling
    sub.add_parser("run", help="Poll the bridge until interrupted")

    # One-shot read
    sub.add_parser("once", help="Fetch and decode a single status frame")

    # Offline decoding of a captured frame
    cmd_decode = sub.add_parser(
        "decode",
        help="Decode a captured SML frame from a file",
    )
    cmd_decode.add_argument(
        "path",
        help="File holding the raw frame",
    )
    cmd_decode.add_argument(
        "--hex",
        action="store_true",
        help="File holds the frame as hex text instead of raw bytes",
    )

    return parser
