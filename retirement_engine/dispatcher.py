"""Async front end that runs calculations on a dedicated worker process.

A :class:`ComputeDispatcher` keeps one ``spawn`` worker alive for the whole
session so the event loop never blocks on a Monte Carlo batch.  Requests and
responses are plain dicts with a ``type`` tag and a caller-generated
``request_id``; a reader thread routes every response to the
``asyncio.Queue`` registered for its request.

Request types and their terminal responses:

============== =======================
request        terminal response
============== =======================
run            complete
legacy         legacy-complete
guardrails     guardrails-complete
roth-optimizer roth-optimizer-complete
============== =======================

Any request may instead end with ``error``; ``run`` also streams
``progress`` messages before it completes.

Example
-------

>>> async def main(inputs):
...     async with ComputeDispatcher() as dispatcher:
...         batch = await dispatcher.run_batch(inputs, seed=42, n_paths=1000,
...                                            on_progress=print)
...         return batch.success_rate
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import multiprocessing as mp
import queue
import threading
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from .calculators import generational, guardrails, monte_carlo, roth
from .errors import ComputationError, GenerationalTimeoutError, RetirementEngineError, ValidationError
from .models import (
    BatchSummary,
    GenerationalParams,
    GuardrailsResult,
    PathResult,
    ProgressEvent,
    RothConversionResult,
    SimulationInputs,
)
from .planner import (
    DEFAULT_TARGET_BRACKET,
    CalculationResult,
    assemble_result,
    representative_seed,
    roth_optimizer_kwargs,
)
from .validation import validate_inputs, validate_target_bracket

logger = logging.getLogger(__name__)

LEGACY_TIMEOUT = 60.0
POLL_INTERVAL = 0.2
SHUTDOWN_TIMEOUT = 5.0
PROGRESS_PHASE = "monteCarlo"

ProgressHandler = Callable[[ProgressEvent], Any]


# ---------- worker side ----------
def _handle_request(message: Dict, responses) -> None:
    kind = message["type"]
    request_id = message["request_id"]

    if kind == "run":
        def progress(completed: int, total: int) -> None:
            responses.put({"type": "progress", "request_id": request_id, "completed": completed, "total": total})

        inputs = message["inputs"]
        batch = monte_carlo.run_batch(inputs, message["seed"], message["n_paths"], progress)
        path = None
        if message.get("representative"):
            path = monte_carlo.run_single_simulation(
                inputs, representative_seed(inputs, message["seed"]), validate=False
            )
        responses.put({"type": "complete", "request_id": request_id, "result": (batch, path)})
    elif kind == "legacy":
        outcome = generational.simulate_payout(message["payout"])
        responses.put({"type": "legacy-complete", "request_id": request_id, "result": outcome})
    elif kind == "guardrails":
        result = guardrails.analyze_guardrails(message["batch"], message["spending_reduction"])
        responses.put({"type": "guardrails-complete", "request_id": request_id, "result": result})
    elif kind == "roth-optimizer":
        result = roth.optimize_roth_conversions(**message["params"])
        responses.put({"type": "roth-optimizer-complete", "request_id": request_id, "result": result})
    else:
        raise ComputationError(f"unknown request type {kind!r}", kind="protocol")


def _error_message(request_id: str, exc: Exception) -> Dict:
    if isinstance(exc, ValidationError):
        return {"type": "error", "request_id": request_id, "error": "validation", "field": exc.field, "message": exc.message}
    kind = exc.kind if isinstance(exc, ComputationError) else type(exc).__name__
    return {"type": "error", "request_id": request_id, "error": "computation", "kind": kind, "message": str(exc)}


def _worker_main(requests, responses) -> None:
    """Worker process loop; a ``None`` request shuts it down."""
    while True:
        message = requests.get()
        if message is None:
            break
        try:
            _handle_request(message, responses)
        except Exception as exc:
            logger.exception("Request %s (%s) failed", message.get("request_id"), message.get("type"))
            responses.put(_error_message(message.get("request_id"), exc))


# ---------- caller side ----------
def _rebuild_error(message: Dict) -> RetirementEngineError:
    if message.get("error") == "validation":
        return ValidationError(message["field"], message["message"])
    return ComputationError(message["message"], kind=message.get("kind"))


class ComputeDispatcher:
    """Owns the worker process and multiplexes async requests onto it."""

    def __init__(self, legacy_timeout: float = LEGACY_TIMEOUT):
        self.legacy_timeout = legacy_timeout
        self._ctx = mp.get_context("spawn")
        self._process = None
        self._requests = None
        self._responses = None
        self._reader: Optional[threading.Thread] = None
        self._stop: Optional[threading.Event] = None
        self._channels: Dict[str, Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = {}
        self._lock = threading.Lock()

    # ----- lifecycle -----
    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._requests = self._ctx.Queue()
        self._responses = self._ctx.Queue()
        self._process = self._ctx.Process(
            target=_worker_main, args=(self._requests, self._responses), name="retirement-engine-worker", daemon=True
        )
        self._process.start()
        self._stop = threading.Event()
        self._reader = threading.Thread(
            target=self._read_responses,
            args=(self._process, self._responses, self._stop),
            name="retirement-engine-reader",
            daemon=True,
        )
        self._reader.start()
        logger.info("Started compute worker pid=%s", self._process.pid)

    def close(self) -> None:
        """Shut the worker down after the requests already queued."""
        if self._process is None:
            return
        if self._process.is_alive():
            self._requests.put(None)
            self._process.join(SHUTDOWN_TIMEOUT)
            if self._process.is_alive():
                logger.warning("Compute worker did not exit in %.0fs; terminating", SHUTDOWN_TIMEOUT)
                self._process.terminate()
                self._process.join()
        self._shutdown_reader("compute worker closed")

    def restart(self) -> None:
        """Kill the worker mid-request and start a fresh one.

        Requests in flight fail with :class:`ComputationError`.
        """
        if self._process is not None:
            logger.info("Restarting compute worker pid=%s", self._process.pid)
            self._process.terminate()
            self._process.join()
            self._shutdown_reader("compute worker restarted")
        self.start()

    def _shutdown_reader(self, reason: str) -> None:
        self._stop.set()
        self._reader.join()
        self._fail_pending(reason)
        self._process = None
        self._reader = None

    async def __aenter__(self) -> "ComputeDispatcher":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    # ----- response routing -----
    def _read_responses(self, process, responses, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                message = responses.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                if not process.is_alive() and not stop.is_set():
                    self._fail_pending(f"compute worker exited with code {process.exitcode}")
                    return
                continue
            self._route(message)

    def _route(self, message: Dict) -> None:
        with self._lock:
            channel = self._channels.get(message.get("request_id"))
        if channel is None:
            logger.debug("Dropping %s for unknown request %s", message.get("type"), message.get("request_id"))
            return
        loop, inbox = channel
        try:
            loop.call_soon_threadsafe(inbox.put_nowait, message)
        except RuntimeError:
            logger.debug("Event loop closed; dropping %s for %s", message.get("type"), message.get("request_id"))

    def _fail_pending(self, reason: str) -> None:
        with self._lock:
            pending = list(self._channels.items())
        for request_id, _ in pending:
            logger.warning("Request %s aborted: %s", request_id, reason)
            self._route({"type": "error", "request_id": request_id, "error": "computation", "kind": "worker", "message": reason})

    async def _exchange(self, message: Dict, terminal: str, on_progress: Optional[ProgressHandler] = None):
        self.start()
        request_id = message["request_id"]
        inbox: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._channels[request_id] = (asyncio.get_running_loop(), inbox)
        try:
            self._requests.put(message)
            while True:
                reply = await inbox.get()
                kind = reply["type"]
                if kind == "progress":
                    if on_progress is not None:
                        await self._emit(on_progress, reply["completed"], reply["total"])
                elif kind == "error":
                    raise _rebuild_error(reply)
                elif kind == terminal:
                    return reply["result"]
                else:
                    logger.warning("Unexpected %s reply to %s request %s", kind, message["type"], request_id)
        finally:
            with self._lock:
                self._channels.pop(request_id, None)

    @staticmethod
    async def _emit(on_progress: ProgressHandler, completed: int, total: int) -> None:
        event = ProgressEvent(
            phase=PROGRESS_PHASE,
            percent=completed / total * 100 if total else 100.0,
            message=f"Running Monte Carlo simulation... {completed} / {total}",
        )
        outcome = on_progress(event)
        if inspect.isawaitable(outcome):
            await outcome

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    # ----- requests -----
    async def _run(
        self,
        inputs: SimulationInputs,
        seed: Optional[int],
        n_paths: int,
        on_progress: Optional[ProgressHandler],
        representative: bool,
    ) -> Tuple[BatchSummary, Optional[PathResult]]:
        validate_inputs(inputs)
        if n_paths < 1:
            raise ValidationError("n_paths", f"Number of simulations must be at least 1. You entered {n_paths}.")
        message = {
            "type": "run",
            "request_id": self._new_id(),
            "inputs": inputs,
            "seed": seed,
            "n_paths": n_paths,
            "representative": representative,
        }
        return await self._exchange(message, "complete", on_progress)

    async def run_batch(
        self,
        inputs: SimulationInputs,
        seed: Optional[int] = None,
        n_paths: int = 1000,
        on_progress: Optional[ProgressHandler] = None,
    ) -> BatchSummary:
        """Monte Carlo batch on the worker; progress arrives before the result.

        Cancelling the awaiting task stops delivery, not the worker; call
        :meth:`restart` to abandon the computation itself.
        """
        batch, _ = await self._run(inputs, seed, n_paths, on_progress, representative=False)
        return batch

    async def run_legacy(self, request: generational.PayoutRequest) -> generational.PayoutOutcome:
        """One generational depletion run; raises :class:`GenerationalTimeoutError`
        after ``legacy_timeout`` seconds."""
        message = {"type": "legacy", "request_id": self._new_id(), "payout": request}
        try:
            return await asyncio.wait_for(self._exchange(message, "legacy-complete"), self.legacy_timeout)
        except asyncio.TimeoutError:
            logger.warning("Generational request %s timed out after %.0fs", message["request_id"], self.legacy_timeout)
            raise GenerationalTimeoutError(
                f"generational simulation ({request.label}) timed out after {self.legacy_timeout:.0f}s"
            ) from None

    async def run_guardrails(
        self, batch: BatchSummary, spending_reduction: float = guardrails.DEFAULT_SPENDING_REDUCTION
    ) -> GuardrailsResult:
        message = {
            "type": "guardrails",
            "request_id": self._new_id(),
            "batch": batch,
            "spending_reduction": spending_reduction,
        }
        return await self._exchange(message, "guardrails-complete")

    async def run_roth_optimizer(self, **params) -> RothConversionResult:
        """Keyword arguments of :func:`~retirement_engine.calculators.roth.optimize_roth_conversions`."""
        if "target_bracket" in params:
            status = "married" if params.get("marital") == "married" else "single"
            validate_target_bracket(params["target_bracket"], status)
        message = {"type": "roth-optimizer", "request_id": self._new_id(), "params": params}
        return await self._exchange(message, "roth-optimizer-complete")

    async def calculate(
        self,
        inputs: SimulationInputs,
        seed: Optional[int] = None,
        n_paths: int = 1000,
        generational_params: Optional[GenerationalParams] = None,
        spending_reduction: float = guardrails.DEFAULT_SPENDING_REDUCTION,
        target_bracket: float = DEFAULT_TARGET_BRACKET,
        on_progress: Optional[ProgressHandler] = None,
    ) -> CalculationResult:
        """Same result as :func:`retirement_engine.planner.calculate`, computed
        on the worker.  The three generational variants run as concurrent
        requests."""
        validate_inputs(inputs)
        validate_target_bracket(target_bracket, inputs.filing_status)
        batch, representative = await self._run(inputs, seed, n_paths, on_progress, representative=True)

        payout = None
        if generational_params is not None:
            plan = generational.plan_generational(batch, inputs, generational_params)
            if plan is not None:
                outcomes = await asyncio.gather(*(self.run_legacy(r) for r in plan.requests))
                payout = generational.assemble_payout(plan, {o.label: o for o in outcomes})

        rails = await self.run_guardrails(batch, spending_reduction) if batch.prob_ruin > 0 else None

        roth_result = None
        kwargs = roth_optimizer_kwargs(inputs, batch, target_bracket)
        if kwargs is not None:
            roth_result = await self.run_roth_optimizer(**kwargs)

        return assemble_result(inputs, batch, representative, payout, rails, roth_result)


__all__ = ["ComputeDispatcher", "LEGACY_TIMEOUT", "PROGRESS_PHASE"]
