"""
=============================================================================
HEALTH CHECK HANDLER
=============================================================================

Health endpoints for load balancers and orchestrators.

    ┌─────────────────────┬───────────────────────────────────────────────┐
    │ Endpoint            │ Answers                                       │
    ├─────────────────────┼───────────────────────────────────────────────┤
    │ /health             │ Every registered check, uptime and content-   │
    │                     │ cache statistics; 503 if any check fails      │
    ├─────────────────────┼───────────────────────────────────────────────┤
    │ /health/live        │ "Is the process running?" Always 200          │
    ├─────────────────────┼───────────────────────────────────────────────┤
    │ /health/ready       │ "Should traffic come here?" 503 while any     │
    │                     │ check fails or the server is shutting down    │
    └─────────────────────┴───────────────────────────────────────────────┘

For the combo server the natural checks are the resource directories:
if css_dir vanishes (an unmounted volume, a bad deploy) every stylesheet
request would 400, so readiness should drop before that happens.

    health = HealthHandler(cache=content_cache)
    health.add_check("css_dir", directory_check(config.css_dir))

Health responses are never cached (Cache-Control: no-store). A cached
"healthy" from a dead instance keeps traffic flowing to it.

=============================================================================
"""

import os
import platform
import sys
import time
from dataclasses import dataclass, field
from typing import Optional, Callable, Dict, Any

from ..combo.cache import ContentCache
from ..core.thread_pool import ThreadPool
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


@dataclass
class HealthStatus:
    """
    Result of one health check.

        def check_disk():
            free = shutil.disk_usage("/srv").free
            return HealthStatus(healthy=free > 1 << 30, details={"free": free})
    """
    healthy: bool
    message: str = "OK"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "message": self.message,
            **self.details,
        }


HealthCheck = Callable[[], HealthStatus]


def directory_check(path: Optional[str]) -> HealthCheck:
    """
    A check that passes while path is a readable directory.

    An unconfigured path (None) passes: nothing can fail to read it.
    """
    def check() -> HealthStatus:
        if not path:
            return HealthStatus(healthy=True, message="not configured")
        if not os.path.isdir(path):
            return HealthStatus(healthy=False, message=f"{path} is not a directory")
        if not os.access(path, os.R_OK | os.X_OK):
            return HealthStatus(healthy=False, message=f"{path} is not readable")
        return HealthStatus(healthy=True, details={"path": path})
    return check


class HealthHandler:
    """
    Health check endpoint handler.

    Routes:
        router.get("/health")(health.handle)
        router.get("/health/live")(health.liveness)
        router.get("/health/ready")(health.readiness)

    Healthy (200 OK):
        {
            "status": "healthy",
            "uptime_seconds": 3600,
            "cache": {"entries": 12, "bytes": 482113, "hits": 9140, ...},
            "workers": {"workers": {"total": 4, "busy": 1, ...}, "tasks": {...}},
            "checks": {"css_dir": {"status": "healthy", ...}}
        }
    """

    def __init__(
        self,
        cache: Optional[ContentCache] = None,
        thread_pool: Optional[ThreadPool] = None,
        include_details: bool = True,
        include_system_info: bool = False,
        server_name: str = "ComboServer/1.0",
    ):
        """
        Args:
            cache: Content cache whose stats are reported on /health.
            thread_pool: Worker pool whose load is reported on /health.
            include_details: Include per-check results.
            include_system_info: Include hostname and Python version, handy
                for telling replicas apart.
            server_name: Value for the Server header.
        """
        self.cache = cache
        self.thread_pool = thread_pool
        self.include_details = include_details
        self.include_system_info = include_system_info
        self.server_name = server_name
        self._checks: Dict[str, HealthCheck] = {}
        self._start_time = time.time()
        self._ready = True

    def add_check(self, name: str, check: HealthCheck) -> "HealthHandler":
        """Register a check; returns self so calls chain."""
        self._checks[name] = check
        return self

    def set_ready(self, ready: bool) -> None:
        """Flip readiness, e.g. to False when shutdown begins."""
        self._ready = ready

    def run_checks(self) -> tuple[bool, Dict[str, dict]]:
        """
        Run every check; an exception counts as unhealthy.

        Returns:
            (all_healthy, {name: result dict})
        """
        results = {}
        all_healthy = True

        for name, check in self._checks.items():
            try:
                status = check()
                results[name] = status.to_dict()
                if not status.healthy:
                    all_healthy = False
            except Exception as e:
                results[name] = {
                    "status": "unhealthy",
                    "error": str(e),
                }
                all_healthy = False

        return all_healthy, results

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        all_healthy, results = self.run_checks()

        response_data: Dict[str, Any] = {
            "status": "healthy" if all_healthy else "unhealthy",
            "uptime_seconds": int(self.uptime),
        }

        if self.cache is not None:
            response_data["cache"] = self.cache.stats.to_dict()

        if self.thread_pool is not None:
            response_data["workers"] = self.thread_pool.stats

        if self.include_details and results:
            response_data["checks"] = results

        if self.include_system_info:
            response_data["system"] = {
                "hostname": platform.node(),
                "platform": platform.system(),
                "python_version": sys.version.split()[0],
            }

        http_status = HTTPStatus.OK if all_healthy else HTTPStatus.SERVICE_UNAVAILABLE
        return self._respond(http_status, response_data)

    def liveness(self, request: HTTPRequest) -> HTTPResponse:
        """Only proves the worker threads still answer; checks nothing else."""
        return self._respond(HTTPStatus.OK, {"status": "alive"})

    def readiness(self, request: HTTPRequest) -> HTTPResponse:
        if not self._ready:
            return self._respond(
                HTTPStatus.SERVICE_UNAVAILABLE,
                {"status": "not ready", "reason": "shutting down"},
            )

        all_healthy, results = self.run_checks()
        if not all_healthy:
            failed = sorted(name for name, r in results.items() if r["status"] != "healthy")
            return self._respond(
                HTTPStatus.SERVICE_UNAVAILABLE,
                {"status": "not ready", "reason": f"Failed checks: {', '.join(failed)}"},
            )

        return self._respond(HTTPStatus.OK, {"status": "ready"})

    def _respond(self, status: HTTPStatus, data: Dict[str, Any]) -> HTTPResponse:
        return (ResponseBuilder(self.server_name)
            .status(status)
            .json(data)
            .header("Cache-Control", "no-store")
            .build())

    @property
    def uptime(self) -> float:
        return time.time() - self._start_time
