from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from bookmark_analyzer.errors import ERROR_PROTOCOL
from bookmark_analyzer.models import ConnectionState, ConnectionStatus, EndpointCandidate


logger = logging.getLogger(__name__)


MSG_DISABLED = "Model disabled; using rule-based analysis only."
MSG_NO_CANDIDATES = "No model endpoints configured."


class EndpointResolver:
    """Finds and remembers the first candidate endpoint that answers coherently.

    The outcome of a resolution, working endpoint or none, is kept in the
    shared ``ConnectionState`` until ``invalidate()`` is called. Concurrent
    callers share one probing round.
    """

    def __init__(self, client, candidates: Sequence[EndpointCandidate], state: ConnectionState | None = None, metrics=None):
        self._client = client
        self._candidates = tuple(candidates)
        self._state = state if state is not None else ConnectionState()
        self._metrics = metrics
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def candidates(self) -> tuple[EndpointCandidate, ...]:
        return self._candidates

    async def resolve(self) -> EndpointCandidate | None:
        state = self._state
        if state.disabled:
            return None
        if state.resolved:
            return state.working_endpoint

        async with self._lock:
            # another caller may have finished probing while we waited
            if state.disabled:
                return None
            if not state.resolved:
                await self._probe_all()
                if state.disabled:
                    # disable() ran while the probes were in flight
                    state.working_endpoint = None
                    state.last_error = MSG_DISABLED
                    return None
            return state.working_endpoint

    async def _probe_all(self) -> None:
        state = self._state
        if not self._candidates:
            state.working_endpoint = None
            state.last_error = MSG_NO_CANDIDATES
            state.resolved = True
            return

        no_model_at: list[str] = []
        last_detail = ""
        for candidate in self._candidates:
            logger.debug("probing %s (%s)", candidate.address, candidate.dialect.value)
            result = await self._client.probe(candidate)
            if self._metrics is not None:
                self._metrics.endpoint_probes_total.labels(result="ok" if result.ok else (result.error_type or "error")).inc()
            if result.ok:
                state.working_endpoint = candidate
                state.last_error = None
                state.resolved = True
                logger.info("using model endpoint %s (%s)", candidate.address, candidate.dialect.value)
                return
            logger.info("endpoint %s unusable: %s", candidate.address, result.detail)
            last_detail = result.detail
            if result.error_type == ERROR_PROTOCOL:
                no_model_at.append(candidate.address)

        state.working_endpoint = None
        if no_model_at:
            state.last_error = (
                f"Model server reachable at {no_model_at[0]} but no model is loaded. "
                "Load a model in the server and reconnect."
            )
        else:
            state.last_error = (
                f"No model server reachable (tried {len(self._candidates)} endpoints; last error: {last_detail}). "
                "Start a local model server and reconnect."
            )
        state.resolved = True
        logger.warning(state.last_error)

    def invalidate(self) -> None:
        self._state.working_endpoint = None
        self._state.last_error = None
        self._state.resolved = False

    def mark_unusable(self, candidate: EndpointCandidate, message: str) -> None:
        if self._state.working_endpoint == candidate:
            self._state.working_endpoint = None
        self._state.last_error = message
        self._state.resolved = True
        logger.warning("endpoint %s marked unusable: %s", candidate.address, message)

    def disable(self) -> None:
        self._state.disabled = True
        self._state.working_endpoint = None
        self._state.last_error = MSG_DISABLED
        logger.info("model disabled, switching to rule-based analysis only")

    def enable(self) -> None:
        self._state.disabled = False
        self.invalidate()

    def status(self) -> ConnectionStatus:
        state = self._state
        if state.disabled:
            return ConnectionStatus(connected=False, message=MSG_DISABLED)
        if state.working_endpoint is not None:
            endpoint = state.working_endpoint
            return ConnectionStatus(
                connected=True,
                message=f"Connected to {endpoint.address} ({endpoint.dialect.value}).",
                endpoint=endpoint,
            )
        return ConnectionStatus(connected=False, message=state.last_error or "Not connected.")
