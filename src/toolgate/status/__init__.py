"""Tool health tracking."""

from .manager import StatusManager, ToolStatus, ToolStatusInfo

__all__ = ["StatusManager", "ToolStatus", "ToolStatusInfo"]
