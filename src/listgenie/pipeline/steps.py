"""Backend step vocabulary, client step projection, and the step board.

The backend logs fine-grained steps (``watermarking``, ``collage``...); the
client shows four coarse phases. The mapping is many-to-one, and a client
step is only reported ``completed`` once every backend step mapped to it has
succeeded, or once the backend has moved on to a later phase.

:class:`StepBoard` owns one :class:`ClientStepMachine` per client step and
applies status snapshots to them. It enforces two board-level rules on top of
the per-step machines:

* after a step reaches ``error``, no later step leaves ``waiting``;
* ``completed`` is never undone except by :meth:`StepBoard.reset` or by a
  backend failure reported on that very step (:meth:`StepBoard.fail`), so
  :attr:`StepBoard.overall_progress` never regresses while a run succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from listgenie.models import ClientStepId, ClientStepState
from listgenie.pipeline.fsm import TRANSITION_FOR_STATE, ClientStepMachine
from listgenie.schemas import JobStatus, StepRecord

logger = logging.getLogger(__name__)

CLIENT_STEP_ORDER: tuple[ClientStepId, ...] = tuple(ClientStepId)

# Backend step -> client step, in backend pipeline order
BACKEND_TO_CLIENT: dict[str, ClientStepId] = {
    "validation": ClientStepId.VALIDATION,
    "watermarking": ClientStepId.PROCESSING,
    "collage": ClientStepId.PROCESSING,
    "packaging": ClientStepId.PROCESSING,
    "drive_upload": ClientStepId.PROCESSING,
    "ai_metadata": ClientStepId.AI_GENERATION,
    "etsy_listing": ClientStepId.ETSY_CREATION,
}

CLIENT_TO_BACKEND: dict[ClientStepId, tuple[str, ...]] = {
    client: tuple(b for b, c in BACKEND_TO_CLIENT.items() if c is client)
    for client in CLIENT_STEP_ORDER
}

# A success record on one of these ends the job
TERMINAL_STEPS: frozenset[str] = frozenset({"finalization", "etsy_listing"})

STEP_DISPLAY_NAMES: dict[str, str] = {
    "validation": "Validating images",
    "watermarking": "Processing watermarks",
    "collage": "Creating collage",
    "packaging": "Packaging files",
    "ai_metadata": "Generating AI metadata",
    "etsy_listing": "Creating Etsy listing",
    "drive_upload": "Uploading to Google Drive",
}

CLIENT_STEP_NAMES: dict[ClientStepId, str] = {
    ClientStepId.VALIDATION: "Validating images",
    ClientStepId.PROCESSING: "Processing watermarks and collages",
    ClientStepId.AI_GENERATION: "Generating AI metadata",
    ClientStepId.ETSY_CREATION: "Creating Etsy draft listing",
}


def client_step_for(backend_step: str) -> ClientStepId | None:
    """Return the client step a backend step maps to, or ``None``."""
    return BACKEND_TO_CLIENT.get(backend_step)


def display_name(backend_step: str) -> str:
    return STEP_DISPLAY_NAMES.get(backend_step, backend_step)


def is_terminal(status: JobStatus) -> bool:
    """True when the latest record is a success on a terminal step."""
    latest = status.latest
    return latest is not None and latest.succeeded and latest.step in TERMINAL_STEPS


@dataclass(frozen=True, slots=True)
class ClientStep:
    """Presentation snapshot of one client step."""

    id: ClientStepId
    state: ClientStepState

    @property
    def name(self) -> str:
        return CLIENT_STEP_NAMES[self.id]


class StepBoard:
    """The four client step machines, in pipeline order.

    Usage::

        board = StepBoard()
        failure = board.apply(status)
        board.overall_progress  # 0.0 .. 1.0
    """

    def __init__(self) -> None:
        self._machines: dict[ClientStepId, ClientStepMachine] = {
            step_id: ClientStepMachine() for step_id in CLIENT_STEP_ORDER
        }
        self.reset()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, step_id: ClientStepId) -> ClientStepState:
        return self._machines[step_id].step_state

    @property
    def steps(self) -> list[ClientStep]:
        return [ClientStep(step_id, self.state(step_id)) for step_id in CLIENT_STEP_ORDER]

    def as_dict(self) -> dict[str, str]:
        return {step.id.value: step.state.value for step in self.steps}

    @property
    def overall_progress(self) -> float:
        """Fraction of client steps in ``completed``."""
        done = sum(1 for s in self.steps if s.state is ClientStepState.COMPLETED)
        return done / len(CLIENT_STEP_ORDER)

    @property
    def failed_step(self) -> ClientStepId | None:
        for step in self.steps:
            if step.state is ClientStepState.ERROR:
                return step.id
        return None

    @property
    def current_step(self) -> ClientStepId | None:
        """First step that is not completed."""
        for step in self.steps:
            if step.state is not ClientStepState.COMPLETED:
                return step.id
        return None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Put every step back to ``waiting`` and mark the first ``pending``."""
        for machine in self._machines.values():
            if machine.step_state is not ClientStepState.WAITING:
                machine.reset()
        self._machines[CLIENT_STEP_ORDER[0]].mark_pending()

    def mark(self, step_id: ClientStepId, target: ClientStepState) -> bool:
        """Move *step_id* forward to *target* if the board allows it.

        Regressions, moves out of terminal states, and advances past an
        errored step are ignored.

        Returns:
            ``True`` if the step changed state.
        """
        machine = self._machines[step_id]
        current = machine.step_state
        if current is target or machine.is_terminal:
            return False
        if target is ClientStepState.WAITING:
            return False
        if target is ClientStepState.PENDING and current is not ClientStepState.WAITING:
            return False

        index = CLIENT_STEP_ORDER.index(step_id)
        blocked_by = next(
            (
                s
                for s in CLIENT_STEP_ORDER[:index]
                if self.state(s) is ClientStepState.ERROR
            ),
            None,
        )
        if blocked_by is not None:
            logger.debug(
                "Not moving %s to %s: %s already failed",
                step_id.value,
                target.value,
                blocked_by.value,
            )
            return False

        machine.send(TRANSITION_FOR_STATE[target])
        logger.debug("Step %s: %s -> %s", step_id.value, current.value, target.value)

        if target is ClientStepState.COMPLETED and index + 1 < len(CLIENT_STEP_ORDER):
            self.mark(CLIENT_STEP_ORDER[index + 1], ClientStepState.PENDING)
        return True

    def complete_through(self, step_id: ClientStepId) -> None:
        """Mark every step before *step_id* completed."""
        for earlier in CLIENT_STEP_ORDER[: CLIENT_STEP_ORDER.index(step_id)]:
            self.mark(earlier, ClientStepState.COMPLETED)

    def complete_all(self) -> None:
        """Mark every step completed, unless a step has failed."""
        if self.failed_step is not None:
            return
        for step_id in CLIENT_STEP_ORDER:
            self.mark(step_id, ClientStepState.COMPLETED)

    def fail(self, step_id: ClientStepId) -> None:
        """Mark *step_id* as ``error`` because the backend said so.

        Unlike :meth:`mark` this overrides a ``completed`` step, and every
        later step goes back to ``waiting``.
        """
        self.complete_through(step_id)
        machine = self._machines[step_id]
        current = machine.step_state
        if current is ClientStepState.ERROR:
            return

        index = CLIENT_STEP_ORDER.index(step_id)
        for later in CLIENT_STEP_ORDER[index + 1 :]:
            if self.state(later) is not ClientStepState.WAITING:
                self._machines[later].reset()

        if current is ClientStepState.COMPLETED:
            logger.warning("Backend failed %s after it was completed", step_id.value)
            machine.send("revoke_completion")
        else:
            machine.send("fail_step")
        logger.debug("Step %s: %s -> error", step_id.value, current.value)

    def fail_current(self) -> ClientStepId | None:
        """Mark the first non-completed step as ``error`` and return it."""
        step_id = self.current_step
        if step_id is not None:
            self.mark(step_id, ClientStepState.ERROR)
        return step_id

    # ------------------------------------------------------------------
    # Snapshot projection
    # ------------------------------------------------------------------

    def apply(self, status: JobStatus) -> StepRecord | None:
        """Project a status snapshot onto the board.

        Returns:
            The first failed record in the snapshot, or ``None``.
        """
        failure = status.first_failure()
        if failure is not None:
            step_id = client_step_for(failure.step) or self.current_step
            if step_id is not None:
                self.fail(step_id)
            return failure

        mapped = [r for r in status.steps if client_step_for(r.step) is not None]
        if not mapped:
            return None

        latest = mapped[-1]
        step_id = BACKEND_TO_CLIENT[latest.step]
        self.complete_through(step_id)
        if latest.started:
            self.mark(step_id, ClientStepState.IN_PROGRESS)
        elif latest.succeeded:
            if self._group_succeeded(step_id, status):
                self.mark(step_id, ClientStepState.COMPLETED)
            else:
                self.mark(step_id, ClientStepState.IN_PROGRESS)
        return None

    @staticmethod
    def _group_succeeded(step_id: ClientStepId, status: JobStatus) -> bool:
        succeeded = {r.step for r in status.steps if r.succeeded}
        return all(b in succeeded for b in CLIENT_TO_BACKEND[step_id])
