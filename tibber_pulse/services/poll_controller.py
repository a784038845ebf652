from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from tibber_pulse.config import PulseConfig
from tibber_pulse.errors import DecodeError
from tibber_pulse.logging import CycleLogEntry, StructuredLog
from tibber_pulse.services.output_sink import OutputSink
from tibber_pulse.services.parse_error_limiter import ErrorRateState, log_parse_error
from tibber_pulse.services.phase_normalizer import normalize_energy, normalize_power
from tibber_pulse.services.pulse_client import PulseClient
from tibber_pulse.services.reading_extractor import extract_reading, format_obis
from tibber_pulse.services.sml_decoder import find_list_response, parse_sml_file, tag_name


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class ExecuteNextPoll:
    pass


@dataclass(frozen=True)
class StatusRequestSucceeded:
    response: Any


@dataclass(frozen=True)
class StatusRequestFailed:
    error: BaseException


@dataclass(frozen=True)
class StrictEntity:
    data: bytes


class PollState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ============================================================================
# Driver
# ============================================================================

class PulseDriver:
    """
    Polls the Pulse bridge, decodes its SML frame and forwards power and
    energy readings to the output sink.

    All state changes happen inside ``on_event``, which the event loop calls
    one event at a time. HTTP work runs on ``executor`` and reports back by
    posting events, so at most one poll cycle is ever in flight. Each cycle
    ends by scheduling the next one after the polling interval, whatever
    its outcome.
    """

    def __init__(
        self,
        cfg: PulseConfig,
        client: PulseClient,
        sink: OutputSink,
        loop,
        executor: Executor,
        log,
        *,
        structured_log: Optional[StructuredLog] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.cfg = cfg
        self.client = client
        self.sink = sink
        self.loop = loop
        self.executor = executor
        self.log = log
        self.structured_log = structured_log
        self.now = now

        self.state = PollState.IDLE
        self.parse_error_state = ErrorRateState()
        self.cycles_completed = 0

        self._handlers = {
            ExecuteNextPoll: self.on_execute_next_poll,
            StatusRequestSucceeded: self.on_status_request_succeeded,
            StatusRequestFailed: self.on_status_request_failed,
            StrictEntity: self.on_strict_entity,
        }

    # ------------------------------------------------------------------
    def start(self) -> None:
        self.loop.set_handler(self.on_event)
        self._execute_polling()

    def on_event(self, event: Any) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            self.log.warning("Ignoring unknown event %r", event)
            return
        handler(event)

    # ------------------------------------------------------------------
    def on_execute_next_poll(self, event: ExecuteNextPoll) -> None:
        if self.state is PollState.REQUESTING:
            self.log.debug("Status request still outstanding; skipping poll")
            return
        self._execute_polling()

    def on_status_request_succeeded(self, event: StatusRequestSucceeded) -> None:
        try:
            future = self.executor.submit(self.client.read_body, event.response)
        except Exception as exc:
            self.loop.post(StatusRequestFailed(exc))
            return
        future.add_done_callback(self._post_body_result)

    def on_status_request_failed(self, event: StatusRequestFailed) -> None:
        self.log.error("failed to execute status polling: %s", event.error)
        self._finish_cycle(PollState.FAILED, error=event.error)

    def on_strict_entity(self, event: StrictEntity) -> None:
        outcome = PollState.SUCCEEDED
        error: Optional[BaseException] = None
        power = energy = None

        try:
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug("Received raw data: %s", event.data.hex(" ").upper())

            sml_file = parse_sml_file(event.data, timeout=self.cfg.jsml_timeout)
            for message in sml_file.messages:
                self.log.debug("Found tag %s", tag_name(message.tag))

            list_response = find_list_response(sml_file.messages)
            if list_response is not None:
                for entry in list_response.entries:
                    self.log.debug("Found OBIS code %s", format_obis(entry.obj_name))

                reading = extract_reading(list_response.entries, observed_at=self.now())
                self.log.debug("Energy Import (Wh): %s", reading.energy_import_wh)
                self.log.debug("Energy Export (Wh): %s", reading.energy_export_wh)
                self.log.debug("Power (W): %s", reading.power_w)

                power = normalize_power(reading, self.cfg.power_phase)
                energy = normalize_energy(reading, self.cfg.energy_phase)
                self.sink.notify_power_data(power)
                self.sink.notify_energy_data(energy)
        except DecodeError as exc:
            outcome, error = PollState.FAILED, exc
            self.parse_error_state = log_parse_error(
                self.log, exc, self.parse_error_state, self.now()
            )
        except Exception as exc:
            outcome, error = PollState.FAILED, exc
            self.log.error("failure: %s", exc)

        self._finish_cycle(outcome, error=error, power=power, energy=energy)

    # ------------------------------------------------------------------
    def _execute_polling(self) -> None:
        self.state = PollState.REQUESTING
        try:
            future = self.executor.submit(self.client.request_status)
        except Exception as exc:
            self.loop.post(StatusRequestFailed(exc))
            return
        future.add_done_callback(self._post_request_result)

    def _post_request_result(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.loop.post(StatusRequestFailed(exc))
        else:
            self.loop.post(StatusRequestSucceeded(future.result()))

    def _post_body_result(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.loop.post(StatusRequestFailed(exc))
        else:
            self.loop.post(StrictEntity(future.result()))

    def _finish_cycle(self, outcome: PollState, *, error=None, power=None, energy=None) -> None:
        self.state = outcome
        self.cycles_completed += 1

        if self.structured_log is not None and self.structured_log.enabled:
            self.structured_log.write(
                CycleLogEntry(
                    timestamp=self.now().isoformat(),
                    outcome=outcome.value,
                    error=str(error) if error is not None else None,
                    power=power,
                    energy=energy,
                )
            )

        self.state = PollState.IDLE
        self.loop.call_later(self.cfg.polling_interval, ExecuteNextPoll())
