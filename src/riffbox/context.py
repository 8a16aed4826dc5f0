# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Runtime context - owns the runtime handle and its composition registry.

Construct one RuntimeContext per application instance and pass it to the
executor. The runtime handle is loaded lazily by a caller-supplied loader;
initialization is idempotent and concurrent callers join the same
in-flight attempt.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from riffbox.errors import ErrorKind, SandboxError
from riffbox.registry import DEFAULT_TEMPO_BPM, CompositionRegistry, notify_listeners


class ContextState(Enum):
    """Lifecycle of the runtime handle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


Loader = Callable[[], Union[Any, Awaitable[Any]]]
StateListener = Callable[[ContextState], None]


class RuntimeContext:
    """Explicitly owned runtime state: handle, lifecycle and registry."""

    def __init__(self, loader: Loader, default_tempo: float = DEFAULT_TEMPO_BPM):
        """
        Args:
            loader: Sync or async callable returning the runtime handle.
            default_tempo: Tempo restored by reset().
        """
        self.loader = loader
        self.registry = CompositionRegistry(default_tempo=default_tempo)
        self.logger = logging.getLogger(__name__)
        self._state = ContextState.UNINITIALIZED
        self._handle: Any = None
        self._error: Optional[SandboxError] = None
        self._pending: Optional["asyncio.Task[Any]"] = None
        # Bumped by destroy(); a load from an older generation is discarded.
        self._generation = 0
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def error(self) -> Optional[SandboxError]:
        """The last initialization failure, if any."""
        return self._error

    @property
    def handle(self) -> Any:
        """The live runtime handle, or None when not ready."""
        return self._handle if self._state is ContextState.READY else None

    @property
    def is_ready(self) -> bool:
        return self._state is ContextState.READY and self._handle is not None

    async def initialize(self) -> Any:
        """Load the runtime handle once.

        Returns:
            The runtime handle.

        Raises:
            SandboxError: NOT_READY if the loader fails or destroy() runs
                before the load finishes.
        """
        if self.is_ready:
            return self._handle

        if self._pending is None:
            self._set_state(ContextState.INITIALIZING)
            self._error = None
            self._pending = asyncio.ensure_future(self._load(self._generation))

        pending = self._pending
        try:
            return await asyncio.shield(pending)
        finally:
            if pending.done() and self._pending is pending:
                self._pending = None

    async def _load(self, generation: int) -> Any:
        try:
            handle = self.loader()
            if inspect.isawaitable(handle):
                handle = await handle
        except Exception as e:
            if generation != self._generation:
                raise self._stale_load()
            self._error = SandboxError(
                ErrorKind.NOT_READY, f"Runtime failed to initialize: {e}", cause=e
            )
            self.logger.error(self._error.message)
            self._set_state(ContextState.ERROR)
            raise self._error

        if generation != self._generation:
            self.logger.info("Discarding runtime loaded after destroy()")
            raise self._stale_load()

        self._handle = handle
        self.registry.attach(handle)
        self.logger.info("Runtime ready")
        self._set_state(ContextState.READY)
        return handle

    def _stale_load(self) -> SandboxError:
        return SandboxError(
            ErrorKind.NOT_READY, "Runtime context was destroyed during initialization"
        )

    def reset(self) -> None:
        """Stop all sounds and clear the composition; the handle stays loaded."""
        self.registry.reset()

    def destroy(self) -> None:
        """Release the handle; initialize() must be called again."""
        handle, self._handle = self._handle, None
        self._error = None
        self._generation += 1
        self._pending = None
        self.registry.detach()
        try:
            self.registry.reset()
            if handle is not None:
                handle.clear()
        finally:
            self._set_state(ContextState.UNINITIALIZED)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for lifecycle transitions."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: ContextState) -> None:
        self._state = state
        notify_listeners(self._listeners, state, self.logger)
