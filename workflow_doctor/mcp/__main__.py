"""Entry point: ``python -m workflow_doctor.mcp``

Starts the workflow-doctor MCP server over stdio (default).

Environment variables
---------------------
WORKFLOW_DOCTOR_LOG_LEVEL     Python log level (default ``WARNING``).
WORKFLOW_DOCTOR_CATALOG_PATH  JSON catalog snapshot (default: bundled table).
WORKFLOW_DOCTOR_AUTOFIX       Default for validate_workflow's ``autofix``.
MCP_TRANSPORT                 ``stdio`` (the only transport served).
"""

from __future__ import annotations

import asyncio

from dotenv import load_dotenv

load_dotenv()

from workflow_doctor.config import DoctorSettings  # noqa: E402
from workflow_doctor.mcp.server import create_server  # noqa: E402
from workflow_doctor.mcp.tools import WorkflowDoctorTools  # noqa: E402


async def main() -> None:
    settings = DoctorSettings.from_env()
    settings.configure_logging()

    tools = WorkflowDoctorTools(settings.load_catalog(), autofix_default=settings.autofix)
    server = create_server(tools)

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        init_options = server.create_initialization_options()
        await server.run(read_stream, write_stream, init_options)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
