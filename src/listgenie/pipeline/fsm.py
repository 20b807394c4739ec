"""Client step lifecycle finite state machine.

Each client step (validation, processing, ai-generation, etsy-creation) gets
its own machine. ``waiting`` and ``pending`` are both pre-execution
(``pending`` marks the step that is next up); ``completed`` and ``error`` are
terminal and only leave through ``reset``, which the board uses when a manual
retry restarts the whole pipeline. The one exception is
``revoke_completion``: the board closes ``validation`` once the upload body
is sent, and the backend may still fail it afterwards.

A status snapshot may skip intermediate states (a step can go straight from
``waiting`` to ``completed`` when a poll tick arrives late), so forward
jumps are legal. Backward moves other than ``reset`` are not.
"""

from __future__ import annotations

from statemachine import State, StateMachine

from listgenie.models import ClientStepState


class ClientStepMachine(StateMachine):
    """Five-state lifecycle for one client-visible pipeline step.

    States:
        waiting     -- Not started and not next in line.
        pending     -- Next in line to start.
        in_progress -- Backend is working on a step mapped here.
        completed   -- Every backend step mapped here succeeded.
        errored     -- A backend step mapped here failed.

    No state has ``final=True`` (``reset`` must be able to leave
    ``completed`` and ``error``).
    """

    waiting = State("waiting", initial=True, value=ClientStepState.WAITING.value)
    pending = State("pending", value=ClientStepState.PENDING.value)
    in_progress = State("in-progress", value=ClientStepState.IN_PROGRESS.value)
    completed = State("completed", value=ClientStepState.COMPLETED.value)
    errored = State("error", value=ClientStepState.ERROR.value)

    mark_pending = waiting.to(pending)
    start_step = waiting.to(in_progress) | pending.to(in_progress)
    complete_step = waiting.to(completed) | pending.to(completed) | in_progress.to(completed)
    fail_step = waiting.to(errored) | pending.to(errored) | in_progress.to(errored)
    # The backend reported a failure on a step the client had already closed
    revoke_completion = completed.to(errored)
    reset = (
        pending.to(waiting)
        | in_progress.to(waiting)
        | completed.to(waiting)
        | errored.to(waiting)
    )

    @property
    def step_state(self) -> ClientStepState:
        return ClientStepState(self.current_state_value)

    @property
    def is_terminal(self) -> bool:
        return self.step_state in (ClientStepState.COMPLETED, ClientStepState.ERROR)


# Event that moves a machine into each target state
TRANSITION_FOR_STATE: dict[ClientStepState, str] = {
    ClientStepState.PENDING: "mark_pending",
    ClientStepState.IN_PROGRESS: "start_step",
    ClientStepState.COMPLETED: "complete_step",
    ClientStepState.ERROR: "fail_step",
}


def create_step_machine(
    current_state: ClientStepState | str = ClientStepState.WAITING,
) -> ClientStepMachine:
    """Create a machine positioned at *current_state*."""
    return ClientStepMachine(start_value=ClientStepState(current_state).value)
