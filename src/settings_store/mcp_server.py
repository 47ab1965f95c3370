"""MCP server exposing the settings store to client processes.

The process that owns the encrypted file runs this server (normally over
stdio, spawned by :func:`settings_store.client.connect_stdio`). Clients never
open the file; they forward calls through two tools:

- ``sql_call(operation, args)``: run one operation, returns an envelope
- ``sql_drain()``: stop accepting new work and wait for in-flight calls
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

from mcp.server.fastmcp import FastMCP

from .channels import ChannelHost, ok_envelope
from .server import SqlServer

logger = logging.getLogger(__name__)

SERVER_NAME = "settings-store"
CALL_TOOL = "sql_call"
DRAIN_TOOL = "sql_drain"


def create_server(host: ChannelHost) -> FastMCP:
    """Build a FastMCP server that forwards tool calls to ``host``."""
    mcp = FastMCP(
        SERVER_NAME,
        instructions="""Settings Store - encrypted user settings

Call `sql_call` with an operation name and its ordered arguments:

| Operation | Args |
|-----------|------|
| get_user_info | [] |
| update_or_create_user | [attributes] |
| set_user_theme | ["system" / "light" / "dark"] |
| remove_db | [] |
| close | [] |

Every call returns {"ok": true, "result": ...} or
{"ok": false, "error": {"kind": ..., "message": ...}}.

Call `sql_drain` before `close` when shutting a client down.
""",
    )

    @mcp.tool(name=CALL_TOOL)
    async def sql_call(operation: str, args: Optional[list[Any]] = None) -> dict:
        """Run one settings store operation.

        Args:
            operation: Operation name (e.g., get_user_info)
            args: Ordered operation arguments
        """
        return await host.call(operation, args or [])

    @mcp.tool(name=DRAIN_TOOL)
    async def sql_drain() -> dict:
        """Stop accepting operations other than close and wait for in-flight ones."""
        await host.drain()
        return ok_envelope(None)

    return mcp


async def serve_stdio(config_dir: Union[str, Path], key: str, log: logging.Logger = logger) -> None:
    """Initialize the store and serve it over stdio until the client hangs up."""
    server = SqlServer(logger=log)
    await server.initialize(config_dir, key)
    log.info("serve_stdio: Serving %s", server.database_path)
    try:
        await create_server(ChannelHost(server)).run_stdio_async()
    finally:
        await server.close()
