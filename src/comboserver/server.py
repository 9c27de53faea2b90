"""
=============================================================================
COMBO SERVER
=============================================================================

Wires the pieces into a running HTTP/1.1 server:

    SocketServer ──► ThreadPool ──► keep-alive loop (per connection)
                                        │
                                        ├─ Connection.read_request
                                        ├─ RequestParser.parse (scheme)
                                        ├─ MiddlewarePipeline (access log)
                                        │      └─ Router
                                        │           ├─ /health, /health/live,
                                        │           │  /health/ready
                                        │           └─ <url_prefix>/*bundle
                                        │                  └─ ComboHandler
                                        └─ HTTPResponse.to_bytes ──► socket

    ┌──────────────────────────────────┬──────────────────────────────────┐
    │ failure                          │ response                         │
    ├──────────────────────────────────┼──────────────────────────────────┤
    │ malformed request                │ 400 / 405 / 413 / 505, close     │
    │ first request too slow           │ 408, close                       │
    │ handler raised                   │ 500, traceback logged            │
    │ thread pool queue full           │ 503 with Retry-After, close      │
    └──────────────────────────────────┴──────────────────────────────────┘

Usage:

    config = ComboConfig.load("combo.properties")
    config.validate()
    ComboServer(config).run()        # blocks until SIGTERM / Ctrl+C

=============================================================================
"""

import logging
from typing import Optional, Callable

from .config import ComboConfig
from .core import SocketServer, Connection, ThreadPool, RequestTooLarge
from .combo.cache import ContentCache
from .handlers import ComboHandler, HealthHandler, directory_check
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, ResponseBuilder, HTTPStatus,
    Router, internal_error, service_unavailable,
)
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ComboServer:
    """
    The combo CSS/JS server.

    Example (in-process, e.g. from a test):

        server = ComboServer(ComboConfig(port=0, css_dir="assets/css"))
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready()
        host, port = server.address
        ...
        server.stop()
    """

    def __init__(
        self,
        config: Optional[ComboConfig] = None,
        cache: Optional[ContentCache] = None,
        configure_logging: bool = True,
    ):
        """
        Args:
            config: Server configuration; defaults when omitted.
            cache: Content cache shared by the combo handler and reported
                by /health. Built from config.cache_dir when omitted.
            configure_logging: Call logging.basicConfig at config.log_level
                on run(). Embedding applications pass False.
        """
        self.config = config or ComboConfig()
        self.configure_logging = configure_logging

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(
            max_request_size=self.config.max_request_size,
            trust_forwarded_proto=self.config.trust_forwarded_proto,
        )

        self.cache = cache if cache is not None else ContentCache(
            self.config.cache_dir, namespace=self.config.build_digest,
        )
        self.combo_handler = ComboHandler(self.config, cache=self.cache)
        self.health_handler = HealthHandler(
            cache=self.cache,
            thread_pool=self._thread_pool,
            server_name=self.config.server_name,
        )
        for name in ("css_dir", "js_dir", "themes_dir"):
            self.health_handler.add_check(name, directory_check(getattr(self.config, name)))

        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(
            log_format=self.config.log_format,
            skip_paths=["/health/live", "/health/ready"],
        ))
        self._register_routes()

        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._running = False

    def _register_routes(self):
        self._router.add_route("/health", self.health_handler.handle, method="GET", name="health")
        self._router.add_route("/health/live", self.health_handler.liveness, method="GET", name="liveness")
        self._router.add_route("/health/ready", self.health_handler.readiness, method="GET", name="readiness")
        self._router.add_route(
            self.config.url_prefix.rstrip("/") + "/*bundle",
            self.combo_handler.handle,
            method="GET",
            name="combo",
        )

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "ComboServer":
        """Add middleware after the access logger."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> tuple:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def handler(self) -> Callable[[HTTPRequest], HTTPResponse]:
        """The middleware-wrapped router, built on first use."""
        if self._handler is None:
            self._handler = self._middleware.wrap(self._router.handle)
        return self._handler

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """Serve until stop() or a shutdown signal. Blocks."""
        if self.configure_logging:
            self._setup_logging()

        self._running = True
        self.health_handler.set_ready(True)
        self._thread_pool.start()

        logger.info(
            f"Serving combo requests under {self.config.url_prefix} "
            f"(minify={'on' if self.config.minify_enabled else 'off'}, "
            f"gzip={'on' if self.config.compression_enabled else 'off'}, "
            f"workers={self.config.min_workers}-{self.config.max_workers})"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = 5.0) -> bool:
        """Block until the socket is listening."""
        return self._socket_server.ready.wait(timeout)

    def stop(self):
        """Ask the accept loop to exit; run() then drains and returns."""
        self.health_handler.set_ready(False)
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        logging.getLogger("comboserver").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self.health_handler.set_ready(False)
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a connection; answer 503 right away if the queue is full."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            block=False,
        )
        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection from {conn.client_ip}")
            if not conn.secure:
                self._send(conn, service_unavailable("Server overloaded"), close=True)
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (worker thread)."""
        with conn:
            try:
                conn.handshake()
            except OSError as e:
                logger.debug(f"[{conn.id}] TLS handshake failed: {e}")
                return

            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except RequestTooLarge as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break
                except OSError as e:
                    logger.debug(f"[{conn.id}] Read failed: {e}")
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address, secure=conn.secure)
                except HTTPParseError as e:
                    self._send_error(conn, HTTPStatus(e.status_code), str(e))
                    break

                response = self.dispatch(request)
                keep_alive = request.is_keep_alive and self.config.keep_alive and self._running

                if not self._send(conn, response, close=not keep_alive,
                                  include_body=request.method != "HEAD"):
                    break

                if not keep_alive:
                    break
                conn.set_keep_alive()

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """Run a parsed request through middleware and router; never raises."""
        try:
            return self.handler(request)
        except Exception as e:
            logger.exception(f"Unhandled error for {request.method} {request.path}: {e}")
            return internal_error()

    def _send(
        self,
        conn: Connection,
        response: HTTPResponse,
        close: bool,
        include_body: bool = True,
    ) -> bool:
        if close:
            response.set_header("Connection", "close")
        else:
            response.set_header("Connection", "keep-alive")
            response.set_header("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
        return conn.send_response(
            response.to_bytes(self.config.server_name, include_body=include_body)
        )

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        response = (ResponseBuilder(self.config.server_name)
            .status(status)
            .json({"error": message})
            .build())
        self._send(conn, response, close=True)


def create_app(config: Optional[ComboConfig] = None, **kwargs) -> ComboServer:
    """Factory: validate the configuration, then build the server."""
    config = config or ComboConfig()
    config.validate()
    return ComboServer(config, **kwargs)
