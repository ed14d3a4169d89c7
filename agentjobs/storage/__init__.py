"""Job store implementations."""

from agentjobs.storage.memory_store import InMemoryJobStore
from agentjobs.storage.repository import JobRepository, MessageWriter, RoomProvisioner
from agentjobs.storage.sqlite_store import SQLiteJobStore

__all__ = [
    "InMemoryJobStore",
    "JobRepository",
    "MessageWriter",
    "RoomProvisioner",
    "SQLiteJobStore",
]
