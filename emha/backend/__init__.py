"""Hosted backend access - REST row API, RPC and auth admin"""

from .client import BackendClient
from .errors import BackendError, ChannelUnavailableError, SqlExecutionError

__all__ = ["BackendClient", "BackendError", "ChannelUnavailableError", "SqlExecutionError"]
