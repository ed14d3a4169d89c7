"""agentjobs: durable agent job scheduler."""

__version__ = "0.1.0"
