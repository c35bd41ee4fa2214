"""Agent records and the file-backed registry."""

from .model import Agent, AgentStatus
from .registry import AgentRegistry

__all__ = ["Agent", "AgentRegistry", "AgentStatus"]
