"""Single-flight cancellation for live-typing completions.

Every keystroke in an editor with auto-completion produces a completion
request. Only the newest one is worth a model call: ``SingleFlight.begin``
cancels whatever request came before, waits a short debounce, and refuses
to continue if an even newer request arrived in the meantime.
"""

import asyncio

import structlog

from llmsp.errors import CompletionCancelledError

logger = structlog.get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1


class CancellationToken:
    """Cooperative cancellation flag owned by one unit of work."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """Raise CompletionCancelledError once the token has been cancelled."""
        if self._cancelled:
            raise CompletionCancelledError()


class SingleFlight:
    """At most one live completion per provider.

    A new request always wins: the previous token is cancelled under the
    lock and replaced, so a superseded request can observe its cancellation
    after any await and bail out before producing a side effect.
    """

    def __init__(self, debounce: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        self.debounce = debounce
        self._lock = asyncio.Lock()
        self._current: CancellationToken | None = None

    @property
    def current(self) -> CancellationToken | None:
        return self._current

    async def begin(self) -> CancellationToken:
        """
        Start a new completion, superseding any in-flight one.

        Returns:
            The token for this request. Callers must call
            ``raise_if_cancelled`` after each awaited I/O step.

        Raises:
            CompletionCancelledError: If a newer request arrived during the
                debounce interval
        """
        async with self._lock:
            if self._current is not None:
                self._current.cancel()
            token = CancellationToken()
            self._current = token

        await asyncio.sleep(self.debounce)
        if token.cancelled:
            logger.debug("completion.debounced")
        token.raise_if_cancelled()
        return token

    async def finish(self, token: CancellationToken) -> None:
        """Forget ``token`` if it is still the current one."""
        async with self._lock:
            if self._current is token:
                self._current = None
