# tibber_pulse/main.py

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path
import logging

from .cli import build_parser
from .config import Config
from .errors import DecodeError
from .logging import ConsoleLog, StructuredLog

from .services.event_loop import EventLoop
from .services.output_sink import ConsoleSink, emit_human, emit_json
from .services.poll_controller import PulseDriver
from .services.pulse_client import PulseClient
from .services.reading_extractor import extract_reading
from .services.sml_decoder import find_list_response, parse_sml_file

DEFAULT_DECODE_TIMEOUT = timedelta(seconds=5)


def _read_frame(path: str, as_hex: bool) -> bytes:
    target = Path(path).expanduser()
    if as_hex:
        text = target.read_text(encoding="utf-8")
        return bytes.fromhex("".join(text.split()))
    return target.read_bytes()


def decode_and_print(raw: bytes, timeout: timedelta, as_json: bool) -> int:
    sml_file = parse_sml_file(raw, timeout=timeout)
    list_response = find_list_response(sml_file.messages)
    entries = list_response.entries if list_response else []
    reading = extract_reading(entries) if list_response else None

    if as_json:
        emit_json(reading, entries)
    else:
        emit_human(reading, entries)
    return 0


def run_decode(args, log) -> int:
    timeout = DEFAULT_DECODE_TIMEOUT
    if Path(args.config).exists():
        timeout = Config.load(args.config).pulse.jsml_timeout

    try:
        raw = _read_frame(args.path, args.hex)
    except (OSError, ValueError) as exc:
        log.error("Unable to read frame from %s: %s", args.path, exc)
        return 2

    try:
        return decode_and_print(raw, timeout, args.json)
    except (DecodeError, ValueError) as exc:
        log.error("failed to parse SML frame: %s", exc)
        return 1


def run_once(app_cfg, args, log) -> int:
    client = PulseClient(app_cfg.pulse, log)
    try:
        raw = client.fetch_status()
    except Exception as exc:
        log.error("failed to execute status polling: %s", exc)
        return 2

    try:
        return decode_and_print(raw, app_cfg.pulse.jsml_timeout, args.json or app_cfg.output.format == "json")
    except (DecodeError, ValueError) as exc:
        log.error("failed to parse status response: %s", exc)
        return 1


def run_driver(app_cfg, args, log, structured_logger) -> int:
    loop = EventLoop(log)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pulse-http")
    sink = ConsoleSink(as_json=args.json or app_cfg.output.format == "json")
    driver = PulseDriver(
        app_cfg.pulse,
        PulseClient(app_cfg.pulse, log),
        sink,
        loop,
        executor,
        log,
        structured_log=structured_logger,
    )

    log.info(
        "Polling %s every %ss",
        driver.client.request_url,
        app_cfg.pulse.polling_interval.total_seconds(),
    )
    driver.start()
    try:
        loop.run()
    except KeyboardInterrupt:
        log.info("Interrupted; stopping driver.")
    finally:
        loop.stop()
        executor.shutdown(wait=False, cancel_futures=True)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "decode":
        log = ConsoleLog(level="DEBUG" if args.debug else "INFO", quiet=args.quiet).setup()
        return run_decode(args, log)

    app_cfg = Config.load(args.config)
    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )
    if args.debug:
        logging.getLogger("urllib3").setLevel(logging.INFO)

    if args.command == "once":
        return run_once(app_cfg, args, log)
    if args.command == "run":
        return run_driver(app_cfg, args, log, structured_logger)
    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
