"""Sandboxed script execution with validation, deadline and tracking.

The executor is the trust boundary: it gates a script through the
classifier, compiles it under the restricted policy, evaluates it against
the capability surface only, races it against a deadline, and records what it declared in the registry.
Every failure is returned as data; nothing raised by a script escapes.

The deadline is cooperative. A script that never yields (a dense
synchronous loop) cannot be interrupted, and a script that times out is
not cancelled: the timeout changes what the caller observes, not whether
the script keeps running.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import ast
import asyncio
import hashlib
import inspect
import json
import logging
import sys
import time
import uuid
from types import CodeType
from typing import Any, Dict, List, Optional, Sequence

from riffbox.config import SandboxConfig
from riffbox.context import RuntimeContext
from riffbox.errors import ErrorKind, SandboxError, classify_exception
from riffbox.event_client import EventClient
from riffbox.sandbox.capabilities import build_globals
from riffbox.sandbox.classifier import classify
from riffbox.sandbox.extraction import (
    extract_instrument_declarations,
    extract_sequence_declarations,
)
from riffbox.sandbox.policy import restrict
from riffbox.schemas import CompositionSnapshot, ExecutionOptions, ExecutionOutcome

logger = logging.getLogger(__name__)

SCRIPT_FILENAME = "<script>"

# The final expression statement is rebound to this name so its value can be
# returned. Scripts cannot spell it: the policy rejects underscore names.
RESULT_BINDING = "__riffbox_result__"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _hash_source(source: str) -> str:
    """Create a SHA256 hash of the script text."""
    return hashlib.sha256(source.encode()).hexdigest()


def compile_script(source: str) -> CodeType:
    """Compile a script under the restricted policy, top-level await allowed.

    The policy runs on every compile, whether or not the classifier did.

    Raises:
        SyntaxError: If the source does not parse.
        SandboxError: INVALID_SOURCE if the policy rejects the source.
    """
    tree = ast.parse(source, filename=SCRIPT_FILENAME)
    violations = restrict(tree)
    if violations:
        raise SandboxError(ErrorKind.INVALID_SOURCE, "; ".join(violations))
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last = tree.body[-1]
        capture = ast.Assign(
            targets=[ast.Name(id=RESULT_BINDING, ctx=ast.Store())],
            value=last.value,
        )
        tree.body[-1] = ast.copy_location(capture, last)
    ast.fix_missing_locations(tree)
    return compile(
        tree,
        SCRIPT_FILENAME,
        "exec",
        flags=ast.PyCF_ALLOW_TOP_LEVEL_AWAIT,
        dont_inherit=True,
    )


def _log_orphan(task: "asyncio.Task[Any]") -> None:
    """Done-callback for scripts that outlived their deadline."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info(f"Timed-out script later failed: {exc}")
    else:
        logger.info("Timed-out script later finished")


class SandboxExecutor:
    """Executes untrusted scripts against a runtime context."""

    def __init__(
        self,
        context: RuntimeContext,
        config: Optional[SandboxConfig] = None,
        event_client: Optional[EventClient] = None,
    ):
        """
        Initialize the executor.

        Args:
            context: Owner of the runtime handle and registry
            config: Timeout defaults and limits
            event_client: Optional JSONL event log
        """
        self.context = context
        self.config = config or SandboxConfig()
        self.event_client = event_client

    def default_options(self) -> ExecutionOptions:
        return ExecutionOptions(timeout_ms=self.config.default_timeout_ms)

    def clamp_timeout(self, timeout_ms: int) -> int:
        """Clamp a requested timeout into [1, max_timeout_ms]."""
        return max(1, min(int(timeout_ms), self.config.max_timeout_ms))

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def execute(
        self, source: str, options: Optional[ExecutionOptions] = None
    ) -> ExecutionOutcome:
        """Validate, run and track one script.

        Args:
            source: Script text.
            options: Timeout, validation and tracking switches.

        Returns:
            ExecutionOutcome. Never raises for script or runtime failures.
        """
        options = options or self.default_options()
        correlation_id = str(uuid.uuid4())
        start = time.monotonic()

        handle = self.context.handle
        if handle is None:
            error = SandboxError(
                ErrorKind.NOT_READY,
                "Runtime is not initialized. Call RuntimeContext.initialize() first.",
            )
            self._log_event("execution.failed", correlation_id, "not_ready", error=error)
            return ExecutionOutcome.failed(error, _elapsed_ms(start), correlation_id)

        if options.validate:
            verdict = classify(source)
            if not verdict.is_acceptable:
                message = "; ".join(f.message for f in verdict.blocking)
                error = SandboxError(ErrorKind.INVALID_SOURCE, message)
                logger.info(f"Script rejected: {message}")
                self._log_event(
                    "execution.rejected",
                    correlation_id,
                    "rejected",
                    payload={
                        "source_hash": _hash_source(source),
                        "findings": [f.message for f in verdict.blocking],
                    },
                    error=error,
                )
                return ExecutionOutcome.failed(error, _elapsed_ms(start), correlation_id)

        timeout_ms = self.clamp_timeout(options.timeout_ms)
        self._log_event(
            "execution.started",
            correlation_id,
            "running",
            payload={
                "source_hash": _hash_source(source),
                "timeout_ms": timeout_ms,
                "validated": options.validate,
            },
        )

        scope: Dict[str, Any] = {}
        try:
            scope = build_globals(handle)
            code = compile_script(source)
            value = await self._run(code, scope, timeout_ms)
        except Exception as e:
            error = classify_exception(e)
            elapsed = _elapsed_ms(start)
            if error.kind is ErrorKind.INVALID_SOURCE:
                logger.info(f"Script rejected at compile: {error.message}")
                self._log_event(
                    "execution.rejected",
                    correlation_id,
                    "rejected",
                    payload={"elapsed_ms": elapsed},
                    error=error,
                )
            elif error.kind is ErrorKind.TIMEOUT:
                logger.info(f"Script timed out after {timeout_ms}ms; it may still be running")
                self._log_event(
                    "execution.timed_out",
                    correlation_id,
                    "timed_out",
                    payload={"elapsed_ms": elapsed},
                    error=error,
                )
            else:
                logger.debug(f"Script failed: {error.message}")
                self._log_event(
                    "execution.failed",
                    correlation_id,
                    "failed",
                    payload={"elapsed_ms": elapsed},
                    error=error,
                )
            return ExecutionOutcome.failed(error, elapsed, correlation_id)

        if options.track:
            self._track(source, scope)

        elapsed = _elapsed_ms(start)
        self._log_event(
            "execution.completed",
            correlation_id,
            "succeeded",
            payload={"elapsed_ms": elapsed},
        )
        return ExecutionOutcome.success(value, elapsed, correlation_id)

    async def execute_sequence(
        self, scripts: Sequence[str], options: Optional[ExecutionOptions] = None
    ) -> List[ExecutionOutcome]:
        """Execute scripts in order, stopping after the first failure.

        Returns:
            Outcomes of every attempted script, the failed one last.
        """
        outcomes: List[ExecutionOutcome] = []
        for source in scripts:
            outcome = await self.execute(source, options)
            outcomes.append(outcome)
            if not outcome.succeeded:
                break
        return outcomes

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run(self, code: CodeType, scope: Dict[str, Any], timeout_ms: int) -> Any:
        """Evaluate compiled code, racing any awaited part against the deadline.

        Synchronous code runs to completion inside eval(). Code that awaits
        comes back as a coroutine and is raced against the deadline.
        """
        result = eval(code, scope)
        if inspect.iscoroutine(result):
            task = asyncio.ensure_future(result)
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
            if task not in done:
                task.add_done_callback(_log_orphan)
                raise SandboxError(
                    ErrorKind.TIMEOUT, f"Script execution timed out after {timeout_ms}ms"
                )
            task.result()
        return scope.get(RESULT_BINDING)

    def _track(self, source: str, scope: Dict[str, Any]) -> None:
        """Register declarations scanned from the source text.

        Sequences resolve their instrument by name: first among this
        script's declarations, then the latest registered instrument.
        Unresolved names are skipped.
        """
        registry = self.context.registry
        try:
            instruments = extract_instrument_declarations(source)
            sequences = extract_sequence_declarations(source)
        except Exception as e:
            logger.debug(f"Declaration scan failed, nothing tracked: {e}")
            return

        declared_ids: Dict[str, str] = {}
        for name, kind in instruments.items():
            instrument = registry.register_instrument(name, kind, scope.get(name))
            declared_ids[name] = instrument.id

        for decl in sequences:
            instrument_id = declared_ids.get(decl.var_name)
            if instrument_id is None:
                existing = registry.find_instrument(decl.var_name)
                if existing is None:
                    logger.debug(f"Sequence on unknown instrument '{decl.var_name}' not tracked")
                    continue
                instrument_id = existing.id
            registry.register_sequence(instrument_id, decl.target, decl.values, decl.timings)

    def _log_event(
        self,
        event_type: str,
        correlation_id: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[SandboxError] = None,
    ) -> None:
        if self.event_client is None:
            return
        payload = dict(payload or {})
        if error is not None:
            payload["error_kind"] = error.kind.value
        self.event_client.log_event(
            event_type=event_type,
            correlation_id=correlation_id,
            status=status,
            payload=payload,
            error_message=error.message if error is not None else None,
        )


# =============================================================================
# Output Rendering
# =============================================================================

def render_outcomes(
    outcomes: Sequence[ExecutionOutcome],
    format_type: str = "table",
    labels: Optional[Sequence[str]] = None,
    snapshot: Optional[CompositionSnapshot] = None,
) -> None:
    """Render outcomes (and optionally the composition) to stdout."""
    labels = list(labels) if labels else [f"#{i + 1}" for i in range(len(outcomes))]

    if format_type == "json":
        for label, outcome in zip(labels, outcomes):
            print(json.dumps({"script": label, **outcome.to_dict()}))
        if snapshot is not None:
            print(json.dumps({"snapshot": snapshot.to_dict()}))
        return

    for label, outcome in zip(labels, outcomes):
        if outcome.succeeded:
            print(f"{label}: ok ({outcome.elapsed_ms}ms)")
        else:
            failure = outcome.failure
            kind = failure.kind.value if failure else "unknown"
            message = failure.message if failure else ""
            print(f"{label}: FAILED [{kind}] {message}", file=sys.stderr)

    if snapshot is not None:
        _render_snapshot(snapshot)


def _render_snapshot(snapshot: CompositionSnapshot) -> None:
    """Render a composition snapshot as a simple table."""
    print(f"Tempo: {snapshot.tempo_bpm:g} bpm")
    print(f"Playing: {'yes' if snapshot.is_playing else 'no'}")
    if not snapshot.instruments:
        print("(no instruments)")
        return
    names = {i.id: i.name for i in snapshot.instruments}
    rows = [
        {
            "name": i.name,
            "kind": i.kind,
            "sequences": ", ".join(s.target for s in snapshot.sequences if s.instrument_id == i.id),
        }
        for i in snapshot.instruments
    ]
    keys = list(rows[0].keys())
    widths = {k: max(len(k), max(len(str(r[k])) for r in rows)) for k in keys}
    header = " | ".join(k.ljust(widths[k]) for k in keys)
    print(header)
    print("-" * len(header))
    for row in rows:
        print(" | ".join(str(row[k]).ljust(widths[k]) for k in keys))
    orphans = [s for s in snapshot.sequences if s.instrument_id not in names]
    if orphans:
        print(f"({len(orphans)} sequence(s) on untracked instruments)")
