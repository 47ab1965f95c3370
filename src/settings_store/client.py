"""Client-side access proxy for contexts that cannot open the file.

:class:`SqlClient` exposes the same data interface as :class:`SqlServer`
(minus ``initialize``) and forwards each call over a transport. Calls are
registered the moment they are made, so ``shutdown()`` always flushes work
issued before it.

Usage:
    async with connect_stdio(resolve_config()) as client:
        info = await client.get_user_info()
        await client.set_user_theme(Theme.DARK)
        await client.shutdown()
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, AsyncIterator, Optional, Union

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult, TextContent

from .channels import JobQueue, Transport, unwrap
from .config import StoreConfig, get_config_help_message
from .errors import InvalidArgument, RemoteError
from .interface import Operation
from .mcp_server import CALL_TOOL, DRAIN_TOOL
from .models import Theme


class SqlClient:
    """ClientInterface that forwards every operation over a transport."""

    def __init__(self, transport: Transport, logger: Optional[logging.Logger] = None):
        self._transport = transport
        self._jobs = JobQueue()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def pending(self) -> int:
        """Number of forwarded calls still in flight."""
        return self._jobs.pending

    def _forward(self, operation: Operation, *args: Any) -> asyncio.Task:
        return self._jobs.submit(partial(self._transport.invoke, operation.value, list(args)))

    def close(self) -> asyncio.Task:
        return self._forward(Operation.CLOSE)

    def remove_db(self) -> asyncio.Task:
        return self._forward(Operation.REMOVE_DB)

    def update_or_create_user(self, attributes: dict[str, Any]) -> asyncio.Task:
        return self._forward(Operation.UPDATE_OR_CREATE_USER, attributes)

    def get_user_info(self) -> asyncio.Task:
        return self._forward(Operation.GET_USER_INFO)

    def set_user_theme(self, theme: Union[Theme, str]) -> asyncio.Task:
        value = theme.value if isinstance(theme, Theme) else theme
        return self._forward(Operation.SET_USER_THEME, value)

    async def shutdown(self) -> None:
        """Drain local calls, let the server drain, then close the database."""
        self.logger.info("Client.shutdown")

        # Stop accepting new calls, flush outstanding ones
        await self._jobs.drain()

        # Server finishes whatever other clients have in flight
        await self._transport.drain_remote()

        # Close database
        await self._transport.invoke(Operation.CLOSE.value, [])


def _decode_result(result: CallToolResult) -> dict:
    """Extract the JSON envelope from a tool result."""
    texts = [block.text for block in result.content if isinstance(block, TextContent)]
    if result.isError:
        raise RemoteError(" ".join(texts) or "Remote tool call failed")
    if not texts:
        raise RemoteError("Remote tool call returned no content")
    try:
        return json.loads(texts[0])
    except json.JSONDecodeError as e:
        raise RemoteError(f"Malformed response from server: {texts[0][:200]}", e) from e


class McpTransport:
    """Transport over an initialized MCP client session."""

    def __init__(self, session: ClientSession):
        self._session = session

    async def invoke(self, operation: str, args: list[Any]) -> Any:
        result = await self._session.call_tool(CALL_TOOL, {"operation": operation, "args": args})
        return unwrap(_decode_result(result))

    async def drain_remote(self) -> None:
        result = await self._session.call_tool(DRAIN_TOOL, {})
        unwrap(_decode_result(result))


def server_parameters(config: StoreConfig) -> StdioServerParameters:
    """Command line for spawning the file-owning server process.

    The key is passed through the child's environment, never on argv.
    """
    if not config.has_key():
        raise InvalidArgument(get_config_help_message(config))
    env = dict(os.environ)
    env[config.key_env] = config.key
    return StdioServerParameters(
        command=sys.executable,
        args=[
            "-m",
            "settings_store",
            "serve",
            "--config-dir",
            str(config.config_dir),
            "--key-env",
            config.key_env,
        ],
        env=env,
    )


@asynccontextmanager
async def connect_stdio(config: StoreConfig) -> AsyncIterator[SqlClient]:
    """Spawn the server process and yield a client connected to it."""
    async with stdio_client(server_parameters(config)) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()
            yield SqlClient(McpTransport(session))
