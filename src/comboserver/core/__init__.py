"""
=============================================================================
CORE NETWORKING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ SocketServer   listening socket, accept loop, TLS wrapping,         │
    │                SIGTERM/SIGINT → graceful shutdown                   │
    └─────────────────────────────────┬───────────────────────────────────┘
                                      │ Connection per client
                                      ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │ ThreadPool     bounded queue + workers; a full queue means 503      │
    └─────────────────────────────────┬───────────────────────────────────┘
                                      │ worker runs the keep-alive loop
                                      ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │ Connection     buffered reads of whole HTTP messages, timeouts,     │
    │                secure flag (→ request scheme)                       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState, RequestTooLarge
from .socket_server import SocketServer, create_ssl_context
from .thread_pool import ThreadPool, Worker, WorkerState, Task

__all__ = [
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "SocketServer",
    "create_ssl_context",
    "ThreadPool",
    "Worker",
    "WorkerState",
    "Task",
]
