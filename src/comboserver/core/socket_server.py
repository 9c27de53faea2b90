"""
=============================================================================
LISTENING SOCKET
=============================================================================

Owns the listening socket: create, configure, bind, listen, accept, close.
Every accepted client is wrapped in a Connection and handed to a callback
(the ComboServer, which queues it on the thread pool).

    socket() ─► setsockopt() ─► bind() ─► listen() ─► accept() loop
                                                         │
                                       Connection(sock, addr, secure)
                                                         │
                                                 connection_handler(conn)

Socket options:
    SO_REUSEADDR   restart without waiting out TIME_WAIT
    SO_REUSEPORT   several processes may share the port (where supported)
    TCP_NODELAY    responses go out at once, no Nagle batching

accept() runs with a one second timeout so the loop notices shutdown.

TLS: with certfile and keyfile configured each client socket is wrapped in
an SSLContext before it becomes a Connection, and its requests carry the
https scheme. The handshake itself happens on the worker thread.

Signals: SIGTERM and SIGINT trigger a graceful shutdown, but handlers can
only be installed from the main thread. A server started from any other
thread (tests, an embedding application) leaves signal handling alone.

=============================================================================
"""

import socket
import signal
import ssl
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ComboConfig
from .connection import Connection


logger = logging.getLogger(__name__)


def create_ssl_context(certfile: str, keyfile: str) -> ssl.SSLContext:
    """Server-side TLS context from a PEM certificate chain and key."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(certfile=certfile, keyfile=keyfile)
    return context


class SocketServer:
    """
    Low-level TCP server.

        server = SocketServer(config)
        server.start(handle_connection)     # blocks until shutdown()

    `ready` is set once the socket is listening; `address` then reports the
    real bound port, which matters when the configured port is 0.
    """

    def __init__(self, config: ComboConfig, ssl_context: Optional[ssl.SSLContext] = None):
        """
        Args:
            config: host, port, backlog and connection settings.
            ssl_context: TLS context; built from config.certfile and
                config.keyfile when omitted and TLS is configured.
        """
        self.config = config

        if ssl_context is None and config.tls_enabled:
            ssl_context = create_ssl_context(config.certfile, config.keyfile)
        self.ssl_context = ssl_context

        self._socket: Optional[socket.socket] = None
        self._bound: Optional[Tuple[str, int]] = None
        self._running = False
        self._shutdown_event = threading.Event()
        self.ready = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def secure(self) -> bool:
        return self.ssl_context is not None

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) actually bound, or the configured pair before start."""
        return self._bound or (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                pass

        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, leaving signal handlers alone")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and run the accept loop until shutdown().

        Raises:
            OSError: The address could not be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound = self._socket.getsockname()[:2]

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        scheme = "https" if self.secure else "http"
        logger.info(f"Server listening on {scheme}://{self._bound[0]}:{self._bound[1]}")
        self.ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            if self.ssl_context is not None:
                try:
                    client_socket = self.ssl_context.wrap_socket(
                        client_socket,
                        server_side=True,
                        do_handshake_on_connect=False,
                    )
                except (ssl.SSLError, OSError) as e:
                    logger.warning(f"TLS setup failed for {client_address[0]}: {e}")
                    client_socket.close()
                    continue

            conn = Connection(
                socket=client_socket,
                address=client_address,
                secure=self.secure,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe from any thread, safe to repeat."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self.ready.clear()
        logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
