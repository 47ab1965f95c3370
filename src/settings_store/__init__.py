"""Settings Store - encrypted, durable local storage for user settings."""

from .channels import ChannelHost, LocalTransport
from .client import SqlClient, connect_stdio
from .config import StoreConfig, resolve_config
from .errors import StoreError
from .interface import ClientInterface, DataInterface, Operation, ServerInterface
from .models import Theme
from .server import HandleState, SqlServer

__version__ = "0.1.0"

__all__ = [
    "ChannelHost",
    "ClientInterface",
    "DataInterface",
    "HandleState",
    "LocalTransport",
    "Operation",
    "ServerInterface",
    "SqlClient",
    "SqlServer",
    "StoreConfig",
    "StoreError",
    "Theme",
    "connect_stdio",
    "resolve_config",
]
