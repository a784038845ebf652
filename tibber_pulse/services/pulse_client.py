from __future__ import annotations

import threading
import time
import urllib.parse
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Callable, Optional

import requests
from requests.auth import HTTPBasicAuth

from tibber_pulse.config import PulseConfig
from tibber_pulse.errors import BodyMaterializationError, PulseRequestError


def build_status_url(base_url: str, node_id: str) -> str:
    query = urllib.parse.urlencode({"node_id": node_id})
    return f"{base_url.rstrip('/')}/data.json?{query}"


class PulseClient:
    """HTTP access to the bridge's raw SML status endpoint."""

    CHUNK_SIZE = 4096

    def __init__(
        self,
        cfg: PulseConfig,
        log,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.clock = clock
        self.request_url = build_status_url(cfg.url, cfg.node_id)
        self.auth = HTTPBasicAuth(cfg.user_id, cfg.password)

    # ------------------------------------------------------------------
    def request_status(self) -> requests.Response:
        """Issue the status request; the body is left unread."""
        self.log.debug("GET %s", self.request_url)
        return self.session.get(
            self.request_url,
            auth=self.auth,
            timeout=self.cfg.request_timeout.total_seconds(),
            stream=True,
        )

    # ------------------------------------------------------------------
    def _materialize(self, response: requests.Response) -> bytes:
        budget = self.cfg.body_timeout.total_seconds()
        deadline = self.clock() + budget
        body = bytearray()

        for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
            if not chunk:
                continue
            body += chunk
            if len(body) > self.cfg.max_body_bytes:
                raise BodyMaterializationError(
                    f"response body exceeds {self.cfg.max_body_bytes} bytes"
                )
            if self.clock() > deadline:
                raise BodyMaterializationError(
                    f"response body not received within {budget:g}s"
                )

        return bytes(body)

    def read_body(self, response: requests.Response) -> bytes:
        """
        Read the whole body within the configured byte and time budget, then
        check the status. Raises BodyMaterializationError or PulseRequestError.

        The body is drained on a helper thread so a read that stalls inside a
        single chunk still ends when the time budget runs out; closing the
        response then unblocks the helper.
        """
        budget = self.cfg.body_timeout.total_seconds()
        outcome: Future = Future()

        def drain() -> None:
            try:
                outcome.set_result(self._materialize(response))
            except BaseException as exc:
                outcome.set_exception(exc)

        threading.Thread(target=drain, name="pulse-body", daemon=True).start()
        try:
            data = outcome.result(timeout=budget)
        except FutureTimeout:
            raise BodyMaterializationError(
                f"response body not received within {budget:g}s"
            ) from None
        except requests.RequestException as exc:
            raise BodyMaterializationError(f"failed to read response body: {exc}") from exc
        finally:
            response.close()

        if not 200 <= response.status_code < 300:
            raise PulseRequestError(self.request_url, response.status_code)
        return data

    # ------------------------------------------------------------------
    def fetch_status(self) -> bytes:
        """Blocking request + body read in one call."""
        return self.read_body(self.request_status())
