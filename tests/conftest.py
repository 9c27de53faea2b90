"""
pytest configuration and fixtures.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from comboserver import ComboServer, ComboConfig
from comboserver.http import HTTPRequest, parse_request


# Fixed mtimes so Last-Modified values are predictable.
OLD_MTIME = 1_700_000_000
NEW_MTIME = 1_700_000_600


def write_file(path: Path, content: str, mtime: Optional[int] = OLD_MTIME) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class Assets:
    """A throwaway resource tree under tmp_path."""

    def __init__(self, root: Path):
        self.root = root
        self.css_dir = root / "css"
        self.js_dir = root / "js"
        self.themes_dir = root / "themes"

        write_file(self.css_dir / "a.css", ".a { color: red; }")
        write_file(self.css_dir / "b.css", ".b { color: blue; }", mtime=NEW_MTIME)
        write_file(self.css_dir / "c.min.css", ".c{color:green}")

        write_file(self.js_dir / "one.js", "var one = 1;")
        write_file(self.js_dir / "two.js", "function two() { return 2; }")

        write_file(self.themes_dir / "dark" / "a.css", ".a { color: black; }")
        write_file(self.themes_dir / "dark" / "extra.css", ".extra { margin: 0; }")
        (self.themes_dir / "empty").mkdir(parents=True)

    def config(self, **overrides) -> ComboConfig:
        values = dict(
            css_dir=str(self.css_dir),
            js_dir=str(self.js_dir),
            themes_dir=str(self.themes_dir),
        )
        values.update(overrides)
        return ComboConfig(**values)


@pytest.fixture
def assets(tmp_path: Path) -> Assets:
    """
    Resource tree:

        css/a.css  css/b.css  css/c.min.css
        js/one.js  js/two.js
        themes/dark/a.css  themes/dark/extra.css  themes/empty/
    """
    return Assets(tmp_path / "assets")


@pytest.fixture
def make_config(assets: Assets) -> Callable[..., ComboConfig]:
    """Factory for a ComboConfig pointing at the assets tree."""
    return assets.config


def build_request(
    target: str,
    headers: Optional[dict] = None,
    method: str = "GET",
    secure: bool = False,
) -> HTTPRequest:
    """Parse a request for target ("/combo/x.css?resources=a") the way the server would."""
    lines = [f"{method} {target} HTTP/1.1", "Host: assets.example.com:8080"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
    return parse_request(raw, ("127.0.0.1", 50000), secure=secure)


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    return build_request


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample combo GET request."""
    return (
        b"GET /combo/site.css?resources=a,b&theme=dark&v=3 HTTP/1.1\r\n"
        b"Host: assets.example.com:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip, deflate\r\n"
        b"Cookie: combinatorius.theme=light; session=\"abc\"\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


class RunningServer:
    """A ComboServer running in a background thread."""

    def __init__(self, server: ComboServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    @property
    def host(self) -> str:
        return self.server.address[0]

    @property
    def port(self) -> int:
        return self.server.address[1]

    def stop(self):
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def running_server(assets: Assets) -> Generator[RunningServer, None, None]:
    """A live server on an OS-assigned port, serving the assets tree."""
    config = assets.config(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )
    server = ComboServer(config, configure_logging=False)
    running = RunningServer(server)
    running.start()

    yield running

    running.stop()
