"""Workflow-doctor MCP tool surface and server."""

from workflow_doctor.mcp.tools import ToolResult, WorkflowDoctorTools
from workflow_doctor.mcp.server import create_server

__all__ = ["ToolResult", "WorkflowDoctorTools", "create_server"]
