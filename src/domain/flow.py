"""
Verification flow session - Client-side driver with cancellable tasks.

One VerificationFlow per official per session. Service calls are blocking,
so each attempt runs in a worker thread wrapped in an asyncio task that the
session can cancel. The only long-lived background tasks are the debounced
office search and the resend cooldown; close() cancels both together with
any in-flight attempt so nothing mutates session state after teardown.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from uuid import UUID

from .claims import OfficeClaimRegistry
from .events import EventBus, FlowStateChanged
from .exceptions import VerificationError
from .models import DocumentFile, GovernmentOffice
from .orchestrator import (
    FlowError,
    FlowOutcome,
    FlowState,
    VerificationOrchestrator,
)
from .ports import VerificationMethod

logger = logging.getLogger(__name__)


class DebouncedSearch:
    """
    Debounced autocomplete over a blocking search function.

    Each update() supersedes the previous one: the pending task is
    cancelled, so only the most recent query's results are applied.
    """

    def __init__(
        self,
        search: Callable[[str], list[GovernmentOffice]],
        on_results: Callable[[str, list[GovernmentOffice]], None],
        delay: float = 0.3,
        min_length: int = 2,
    ) -> None:
        self._search = search
        self._on_results = on_results
        self._delay = delay
        self._min_length = min_length
        self._task: asyncio.Task | None = None
        self._last_query: str | None = None

    def update(self, query: str) -> None:
        """Schedule a search for query. Must be called from a running event loop."""
        query = query.strip()
        if query == self._last_query:
            return
        self._last_query = query
        self.cancel()

        if len(query) < self._min_length:
            self._on_results(query, [])
            return
        self._task = asyncio.get_running_loop().create_task(self._run(query))

    async def wait(self) -> None:
        """Wait for the current search, if any, to finish or be cancelled."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, query: str) -> None:
        await asyncio.sleep(self._delay)
        try:
            results = await asyncio.to_thread(self._search, query)
        except VerificationError as exc:
            logger.warning("Office search for %r failed: %s", query, exc)
            results = []
        self._on_results(query, results)


class ResendCooldown:
    """Countdown gating the "Resend code" action. Advisory only."""

    def __init__(self, seconds: int = 60, tick: float = 1.0) -> None:
        self._seconds = seconds
        self._tick = tick
        self._remaining = 0
        self._task: asyncio.Task | None = None

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def can_resend(self) -> bool:
        return self._remaining <= 0

    def start(self) -> None:
        self.cancel()
        self._remaining = self._seconds
        self._task = asyncio.get_running_loop().create_task(self._count_down())

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _count_down(self) -> None:
        while self._remaining > 0:
            await asyncio.sleep(self._tick)
            self._remaining -= 1


class VerificationFlow:
    """
    Per-official session over VerificationOrchestrator.

    Holds the presentation-facing state (current FlowState, last error,
    search results, selected office) and publishes FlowStateChanged on
    every transition. Use as ``async with VerificationFlow(...) as flow``.
    """

    def __init__(
        self,
        official_id: UUID,
        orchestrator: VerificationOrchestrator,
        registry: OfficeClaimRegistry,
        events: EventBus | None = None,
        search_delay: float = 0.3,
        min_query_length: int = 2,
        cooldown: ResendCooldown | None = None,
    ) -> None:
        self.official_id = official_id
        self._orchestrator = orchestrator
        self._registry = registry
        self._events = events
        self._cooldown = cooldown or ResendCooldown()
        self._search = DebouncedSearch(
            registry.search, self._apply_results, delay=search_delay, min_length=min_query_length
        )
        self._attempt: asyncio.Task | None = None
        self._closed = False

        self.state = FlowState.IDLE
        self.error: FlowError | None = None
        self.outcome: FlowOutcome | None = None
        self.search_results: list[GovernmentOffice] = []
        self.selected_office: GovernmentOffice | None = None

    async def __aenter__(self) -> "VerificationFlow":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def can_resend(self) -> bool:
        return self.state is FlowState.AWAITING_CODE and self._cooldown.can_resend

    @property
    def resend_remaining(self) -> int:
        return self._cooldown.remaining

    def search(self, query: str) -> None:
        self._search.update(query)

    async def wait_for_search(self) -> None:
        await self._search.wait()

    async def resume(self) -> FlowOutcome:
        """Re-derive state from the store, e.g. after an app restart."""
        outcome = await self._attempt_with(
            self._orchestrator.status, self.official_id, submitting=False
        )
        if outcome.ok and self.selected_office is None:
            profile = await asyncio.to_thread(self._orchestrator.officials.get, self.official_id)
            if profile is not None and profile.office_id is not None:
                self.selected_office = await asyncio.to_thread(
                    self._registry.get, profile.office_id
                )
        return outcome

    async def select_office(self, office: GovernmentOffice) -> FlowOutcome:
        """Claim the office; on success the flow moves to method selection."""
        outcome = await self._attempt_with(
            self._orchestrator.claim_office, self.official_id, office.id
        )
        if outcome.ok:
            self.selected_office = office
        return outcome

    async def start(self, method: VerificationMethod, target: str | None = None) -> FlowOutcome:
        office = self._require_office()
        outcome = await self._attempt_with(
            self._orchestrator.start, self.official_id, office.id, method, target
        )
        is_email = method is VerificationMethod.GOVERNMENT_EMAIL
        if is_email and outcome.state is FlowState.AWAITING_CODE:
            self._cooldown.start()
        return outcome

    async def resend_code(self) -> FlowOutcome:
        if not self._cooldown.can_resend:
            return self.outcome or FlowOutcome(self.state)
        outcome = await self._attempt_with(self._orchestrator.resend_code, self.official_id)
        if outcome.ok:
            self._cooldown.start()
        return outcome

    async def verify_code(self, code: str) -> FlowOutcome:
        return await self._attempt_with(self._orchestrator.verify_code, self.official_id, code)

    async def check_website(self) -> FlowOutcome:
        return await self._attempt_with(self._orchestrator.check_website, self.official_id)

    async def upload_documents(self, files: Sequence[DocumentFile]) -> FlowOutcome:
        office = self._require_office()
        return await self._attempt_with(
            self._orchestrator.upload_documents, self.official_id, office.id, files
        )

    async def cancel(self) -> FlowOutcome:
        self._cooldown.cancel()
        return await self._attempt_with(self._orchestrator.cancel, self.official_id)

    async def close(self) -> None:
        """Cancel every background task owned by this session."""
        self._closed = True
        self._search.cancel()
        self._cooldown.cancel()
        if self._attempt is not None and not self._attempt.done():
            self._attempt.cancel()
            await asyncio.gather(self._attempt, return_exceptions=True)
        self._attempt = None

    async def _attempt_with(self, operation, *args, submitting: bool = True) -> FlowOutcome:
        self._require_idle()
        if submitting:
            self._transition(FlowState.SUBMITTING_CHALLENGE)
        outcome = await self._in_thread(operation, *args)
        self._apply(outcome)
        return outcome

    def _require_idle(self) -> None:
        if self._closed:
            raise RuntimeError("Verification flow is closed")
        if self._attempt is not None and not self._attempt.done():
            raise RuntimeError("Another verification step is still running")

    async def _in_thread(self, operation, *args):
        self._require_idle()
        self._attempt = asyncio.get_running_loop().create_task(asyncio.to_thread(operation, *args))
        try:
            return await self._attempt
        finally:
            self._attempt = None

    def _require_office(self) -> GovernmentOffice:
        if self.selected_office is None:
            raise RuntimeError("Select an office before choosing a verification method")
        return self.selected_office

    def _apply_results(self, query: str, results: list[GovernmentOffice]) -> None:
        if self._closed:
            return
        self.search_results = results

    def _apply(self, outcome: FlowOutcome) -> None:
        self.outcome = outcome
        self.error = outcome.error
        self._transition(outcome.state)

    def _transition(self, state: FlowState) -> None:
        if self._closed:
            return
        self.state = state
        if state is FlowState.SUBMITTING_CHALLENGE:
            self.error = None
        if self._events is not None:
            self._events.publish(
                FlowStateChanged(
                    official_id=self.official_id,
                    state=state.value,
                    error=self.error.kind.value if self.error else None,
                )
            )


__all__ = [
    "DebouncedSearch",
    "ResendCooldown",
    "VerificationFlow",
]
