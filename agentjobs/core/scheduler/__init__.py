"""Agent job scheduling: polling worker over the job store."""

from agentjobs.core.scheduler.worker import AgentJobWorker

__all__ = ["AgentJobWorker"]
