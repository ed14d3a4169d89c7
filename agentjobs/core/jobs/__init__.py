"""Agent job domain: types, validation, escalation policy, schedules."""

from agentjobs.core.jobs.errors import (
    JobConflictError,
    JobNotFoundError,
    JobStoreError,
    JobValidationError,
    RetryableStoreError,
    StoreConfigurationError,
)
from agentjobs.core.jobs.types import (
    AgentJob,
    AgentJobFilter,
    AgentJobRun,
    CompleteRunInput,
    CreateAgentJobInput,
    UpdateAgentJobInput,
)

__all__ = [
    "AgentJob",
    "AgentJobFilter",
    "AgentJobRun",
    "CompleteRunInput",
    "CreateAgentJobInput",
    "JobConflictError",
    "JobNotFoundError",
    "JobStoreError",
    "JobValidationError",
    "RetryableStoreError",
    "StoreConfigurationError",
    "UpdateAgentJobInput",
]
