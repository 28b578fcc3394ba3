"""
Optimistic concurrency on top of a store with no compare-and-swap.

Every mutating client action moves through
    idle → pending_write → verifying → settled | retrying

Three pieces:
- atomic_join: read, compute the participant update, write, re-read and verify.
  Another writer may have replaced the list in between, so retry with a
  growing delay up to a fixed number of attempts.
- GuardedReconciler: filters subscription pushes against the locally held
  document. Rejects pushes that would move the turn cursor mid-round, or that
  rewrite locked fields while a game is running. Everything else is
  last-write-wins.
- freeze_on_deadline: persist the value shown when a countdown hit zero.
  The first persisted freeze wins and is reused by everyone after.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from games.errors import IllegalTransition, SessionDeleted, SessionNotFound

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Sleep = Callable[[float], Awaitable[Any]]


class SyncPhase(str, Enum):
    IDLE = "idle"
    PENDING_WRITE = "pending_write"
    VERIFYING = "verifying"
    SETTLED = "settled"
    RETRYING = "retrying"


class RetryPolicy(BaseModel):
    max_attempts: int = 3
    backoff: float = 0.1   # seconds; delay grows linearly with the attempt number

    def delay(self, attempt: int) -> float:
        return self.backoff * (attempt + 1)


class JoinResult(BaseModel):
    success: bool
    room: Optional[Document] = None
    error: Optional[str] = None
    attempts: int = 0
    phases: List[SyncPhase] = []


def _default_policy() -> RetryPolicy:
    from config import settings
    return RetryPolicy(max_attempts=settings.join_max_attempts, backoff=settings.join_backoff_seconds)


class _PhaseLog:
    """Records and logs each phase change of one client action."""

    def __init__(self, room_id: str, action: str):
        self.room_id = room_id
        self.action = action
        self.phases: List[SyncPhase] = [SyncPhase.IDLE]

    def enter(self, phase: SyncPhase) -> None:
        self.phases.append(phase)
        logger.debug(f"[{self.room_id}] {self.action}: {phase.value}")


# ── Join-with-verify ──────────────────────────────────────────────────────────

async def atomic_join(
    store,
    collection: str,
    room_id: str,
    mutate: Callable[[Document], Optional[Document]],
    verify: Callable[[Document], bool],
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
) -> JoinResult:
    """Add or update a participant.

    ``mutate(doc)`` returns the partial update to write, or None when the
    participant is already present as expected. ``verify(doc)`` checks the
    re-read document. IllegalTransition from ``mutate`` propagates unretried.
    """
    policy = policy or _default_policy()
    log = _PhaseLog(room_id, "join")
    last_doc: Optional[Document] = None
    error = "verification_failed"

    for attempt in range(policy.max_attempts):
        try:
            doc = await store.get(collection, room_id)
            if doc is None:
                raise SessionNotFound(collection, room_id)

            updates = mutate(doc)
            if updates is None:
                log.enter(SyncPhase.SETTLED)
                return JoinResult(success=True, room=doc, attempts=attempt + 1, phases=log.phases)

            log.enter(SyncPhase.PENDING_WRITE)
            await store.update(collection, room_id, updates)

            log.enter(SyncPhase.VERIFYING)
            last_doc = await store.get(collection, room_id)
            if last_doc is None:
                raise SessionDeleted(collection, room_id)
            if verify(last_doc):
                log.enter(SyncPhase.SETTLED)
                logger.info(f"[{room_id}] Join verified on attempt {attempt + 1}")
                return JoinResult(success=True, room=last_doc, attempts=attempt + 1, phases=log.phases)

            error = "verification_failed"
            logger.warning(
                f"[{room_id}] Join verification failed (attempt {attempt + 1}/{policy.max_attempts})"
            )
        except (SessionNotFound, IllegalTransition):
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"[{room_id}] Join error (attempt {attempt + 1}/{policy.max_attempts}): {e}")

        if attempt < policy.max_attempts - 1:
            log.enter(SyncPhase.RETRYING)
            await sleep(policy.delay(attempt))

    return JoinResult(
        success=False, room=last_doc, error=error, attempts=policy.max_attempts, phases=log.phases
    )


# ── Deadline value-freeze ─────────────────────────────────────────────────────

async def freeze_on_deadline(
    store,
    collection: str,
    room_id: str,
    freeze: Callable[[Document], Optional[Document]],
    read_frozen: Callable[[Document], Any],
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """Persist the displayed value at deadline and return the winning value.

    An already-frozen value is reused, never overwritten. ``freeze(doc)``
    returns the partial update holding the value (None if nothing to freeze).
    """
    policy = policy or _default_policy()
    log = _PhaseLog(room_id, "freeze")

    for attempt in range(policy.max_attempts):
        doc = await store.get(collection, room_id)
        if doc is None:
            raise SessionNotFound(collection, room_id)
        frozen = read_frozen(doc)
        if frozen is not None:
            log.enter(SyncPhase.SETTLED)
            return frozen

        updates = freeze(doc)
        if updates is None:
            log.enter(SyncPhase.SETTLED)
            return None

        log.enter(SyncPhase.PENDING_WRITE)
        await store.update(collection, room_id, updates)
        log.enter(SyncPhase.VERIFYING)
        doc = await store.get(collection, room_id)
        if doc is None:
            raise SessionDeleted(collection, room_id)
        frozen = read_frozen(doc)
        if frozen is not None:
            log.enter(SyncPhase.SETTLED)
            logger.info(f"[{room_id}] Deadline value frozen: {frozen!r}")
            return frozen

        if attempt < policy.max_attempts - 1:
            log.enter(SyncPhase.RETRYING)
            await sleep(policy.delay(attempt))

    logger.warning(f"[{room_id}] Could not persist deadline freeze")
    return None


# ── Read → transition → write ─────────────────────────────────────────────────

def changed_fields(before: Document, after: Document) -> Document:
    return {k: v for k, v in after.items() if before.get(k) != v or k not in before}


async def commit_transition(
    store,
    collection: str,
    room_id: str,
    transition: Callable[[Document], Document],
) -> Document:
    """Apply a pure transition to the stored document and write only the
    top-level fields it changed. A raising transition writes nothing."""
    doc = await store.get(collection, room_id)
    if doc is None:
        raise SessionNotFound(collection, room_id)
    new_doc = transition(doc)
    updates = changed_fields(doc, new_doc)
    if updates:
        await store.update(collection, room_id, updates)
        logger.info(f"[{room_id}] Committed {sorted(updates)}")
    return new_doc


# ── Guarded reconciliation ────────────────────────────────────────────────────

class ReconcileOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNCHANGED = "unchanged"


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class ReconcileGuard:
    """Per-game rules for which pushes a client must refuse.

    cursor_field: turn cursor that must not move while the local round is
        active and its summary has not been shown.
    locked: projection of fields that must not change while ``locked_while``
        holds for both the local and the pushed document.
    """

    def __init__(
        self,
        cursor_field: Optional[str] = None,
        round_active: Optional[Callable[[Document], bool]] = None,
        summary_shown: Optional[Callable[[Document], bool]] = None,
        locked: Optional[Callable[[Document], Any]] = None,
        locked_while: Optional[Callable[[Document], bool]] = None,
    ):
        self.cursor_field = cursor_field
        self.round_active = round_active or (lambda doc: False)
        self.summary_shown = summary_shown or (lambda doc: False)
        self.locked = locked
        self.locked_while = locked_while or (lambda doc: False)

    def rejection(self, local: Document, push: Document) -> Optional[str]:
        if (
            self.cursor_field
            and local.get(self.cursor_field) != push.get(self.cursor_field)
            and self.round_active(local)
            and not self.summary_shown(local)
        ):
            return "turn cursor moved during an active round"
        if (
            self.locked is not None
            and self.locked_while(local)
            and self.locked_while(push)
            and _canonical(self.locked(local)) != _canonical(self.locked(push))
        ):
            return "locked fields changed during play"
        return None


class GuardedReconciler:
    """Holds one client's view of a session document."""

    def __init__(self, collection: str, room_id: str, guard: Optional[ReconcileGuard] = None,
                 local: Optional[Document] = None):
        self.collection = collection
        self.room_id = room_id
        self.guard = guard or ReconcileGuard()
        self.local = local

    def receive(self, push: Optional[Document]) -> Tuple[ReconcileOutcome, Optional[Document]]:
        """Returns the outcome and the (possibly unchanged) local document."""
        if push is None:
            raise SessionDeleted(self.collection, self.room_id)
        if self.local is None:
            self.local = push
            return ReconcileOutcome.ACCEPTED, self.local
        if _canonical(self.local) == _canonical(push):
            return ReconcileOutcome.UNCHANGED, self.local

        reason = self.guard.rejection(self.local, push)
        if reason:
            logger.warning(f"[{self.room_id}] Rejected push: {reason}")
            return ReconcileOutcome.REJECTED, self.local

        self.local = push
        return ReconcileOutcome.ACCEPTED, self.local
