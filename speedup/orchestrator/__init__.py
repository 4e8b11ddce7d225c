"""Job orchestration for the speed-up engine.

Provides the job state machine with:
- Transition table and derived status text (state.py)
- Primary / fallback attempt handling and resource publication (job.py)
"""

from speedup.engine.lifecycle import NotReady
from speedup.orchestrator.job import JobInFlight, JobStateMachine, NoAssetSelected
from speedup.orchestrator.state import TERMINAL_STATES, is_terminal, status_message

__all__ = [
    "JobInFlight",
    "JobStateMachine",
    "NoAssetSelected",
    "NotReady",
    "TERMINAL_STATES",
    "is_terminal",
    "status_message",
]
