"""Job polling and the client-visible step pipeline.

Public API
----------
.. autoclass:: JobStatusPoller
.. autoclass:: StepBoard
.. autoclass:: ClientStepMachine
.. autoclass:: RetrySession
.. autoclass:: ProcessingRunner
.. autoclass:: UploadProgressTracker
"""

from listgenie.pipeline.fsm import ClientStepMachine, create_step_machine
from listgenie.pipeline.poller import JobStatusPoller
from listgenie.pipeline.progress import UploadProgressTracker
from listgenie.pipeline.retry import RetrySession
from listgenie.pipeline.runner import ProcessingOutcome, ProcessingRunner
from listgenie.pipeline.steps import (
    BACKEND_TO_CLIENT,
    CLIENT_STEP_ORDER,
    ClientStep,
    StepBoard,
    client_step_for,
    is_terminal,
)

__all__ = [
    "BACKEND_TO_CLIENT",
    "CLIENT_STEP_ORDER",
    "ClientStep",
    "ClientStepMachine",
    "JobStatusPoller",
    "ProcessingOutcome",
    "ProcessingRunner",
    "RetrySession",
    "StepBoard",
    "UploadProgressTracker",
    "client_step_for",
    "create_step_machine",
    "is_terminal",
]
