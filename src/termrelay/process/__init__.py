"""Process supervision — managed OS processes with piped I/O.

Every wrapped program runs in its own process group with separate stdout
and stderr pipes. The supervisor reports output chunks and lifecycle
transitions on a single event queue.
"""

from termrelay.process.events import OutputChunk, ProcessEvent, ProcessExited, ProcessFailed
from termrelay.process.managed import ManagedProcess, ProcessConfig, ProcessStatus
from termrelay.process.supervisor import ProcessSupervisor

__all__ = [
    "ManagedProcess",
    "OutputChunk",
    "ProcessConfig",
    "ProcessEvent",
    "ProcessExited",
    "ProcessFailed",
    "ProcessStatus",
    "ProcessSupervisor",
]
