"""Development server for Kiln.

The site is built in dev mode (never minified) into a staging directory that
replaces the output directory once the build succeeds, so the HTTP server
never serves a half-written site.

Key classes:
- DevServer: Builds, serves and rebuilds the site on change.
- LiveReloadHandler: HTTP handler adding the reload script to HTML responses.
- ReloadBroadcaster: Websocket server telling connected browsers to reload.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import shutil
import threading
import time
from collections.abc import Callable, Iterable
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildError, build_site
from .config import CONFIG_FILENAME, BuildMode, Settings, load_config
from .content import SOURCE_DIR
from .utils import ensure_clean_dir

RELOAD_SCRIPT = """
<script>
(() => {{
  const socket = new WebSocket(`ws://${{location.hostname}}:{ws_port}`);
  socket.addEventListener("message", (event) => {{
    if (JSON.parse(event.data || "{{}}").type === "reload") location.reload();
  }});
}})();
</script>
"""


def reload_script(ws_port: int) -> str:
    return RELOAD_SCRIPT.format(ws_port=ws_port)


class LiveReloadHandler(SimpleHTTPRequestHandler):
    """Serves the built site.

    Directory listings are never shown; a missing path gets the site's
    ``404.html`` when it has one.
    """

    snippet = reload_script(4568)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - send_head never lists
        return self.send_not_found()

    def send_head(self):
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            return self.send_not_found()
        if target.suffix not in (".html", ".htm"):
            return super().send_head()
        self._write_html(200, target.read_text(encoding="utf-8"))
        return None

    def send_not_found(self):
        page = Path(self.directory) / "404.html"
        if page.is_file():
            self._write_html(404, page.read_text(encoding="utf-8"))
        else:
            self.send_error(404, "File not found")
        return None

    def _write_html(self, status: int, html: str) -> None:
        if "</body>" in html:
            html = html.replace("</body>", f"{self.snippet}</body>", 1)
        else:
            html += self.snippet
        payload = html.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)


class ReloadBroadcaster:
    """Websocket server that pushes reload messages to connected browsers.

    The server runs its own event loop on a background thread; ``reload`` may
    be called from any thread.
    """

    def __init__(self, port: int):
        self.port = port
        self.clients: set = set()
        self.loop = asyncio.new_event_loop()

    def run(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._serve())
        except OSError as exc:
            print(f"Live reload server failed to start (port {self.port}): {exc}")

    async def _serve(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self.register, "0.0.0.0", self.port):
            await asyncio.Future()

    async def register(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    def reload(self) -> None:
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self.send_all(message), self.loop)

    async def send_all(self, message: str) -> None:
        for client in list(self.clients):
            try:
                await client.send(message)
            except Exception:
                # Closed or broken connection; forget the client
                self.clients.discard(client)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)


def _file_stamp(path: Path) -> tuple[int, int] | None:
    """Return (mtime, size) of a regular file, or None."""
    try:
        if not path.is_file():
            return None
        stat = path.stat()
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


class _SourceChangeHandler(FileSystemEventHandler):
    """Calls ``on_change`` with the path of file events outside the ignored directories."""

    def __init__(self, on_change: Callable[[Path], object], ignored: Iterable[Path]):
        super().__init__()
        self.on_change = on_change
        self.ignored = tuple(ignored)

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        if "node_modules" in path.parts:
            return
        if any(path.is_relative_to(directory) for directory in self.ignored):
            return
        self.on_change(path)


class DevServer:
    """Development server with live reload.

    Attributes:
        project_root: Root directory of the project.
        settings: Site settings.
        output_dir: Directory the site is served from.
        staging_dir: Directory each build is written to before it is swapped in.
        http_port: Port for the HTTP server.
        ws_port: Port for the live reload websocket server. Defaults to the
            configured ``ws_port``, or ``http_port + 1`` when the HTTP port is
            given explicitly or no websocket port is configured.
        include_drafts: Whether builds include unpublished pages.
    """

    def __init__(
        self,
        project_root: Path,
        settings: Settings | None = None,
        http_port: int | None = None,
        ws_port: int | None = None,
    ):
        self.project_root = project_root
        self.settings = settings or load_config(project_root)
        self.output_dir = project_root / self.settings.output_dir
        self.staging_dir = self.output_dir.with_name(f"{self.output_dir.name}.staging")
        self.http_port = http_port or self.settings.port
        if ws_port is None:
            if http_port is None and self.settings.ws_port is not None:
                ws_port = self.settings.ws_port
            else:
                ws_port = self.http_port + 1
        self.ws_port = ws_port
        self.broadcaster = ReloadBroadcaster(ws_port)
        self.include_drafts = False
        self.debounce_seconds = 0.05
        self.settle_seconds = 0.05
        self._observer: Observer | None = None
        self._lock = threading.Lock()
        self._last_build_at = float("-inf")
        self._signature: tuple | None = None
        self._config_stamp = _file_stamp(self.config_path)

    @property
    def config_path(self) -> Path:
        return self.project_root / CONFIG_FILENAME

    @property
    def snippet(self) -> str:
        return reload_script(self.ws_port)

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - integration path
        self.include_drafts = include_drafts
        self.build()
        self._signature = self.source_signature()
        threading.Thread(target=self._serve_http, daemon=True).start()
        threading.Thread(target=self.broadcaster.run, daemon=True).start()
        self.watch()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.broadcaster.stop()

    def build(self) -> None:
        """Build into the staging directory and swap it in as the output."""
        ensure_clean_dir(self.staging_dir)
        build_site(
            self.project_root,
            mode=BuildMode.DEV,
            settings=self.settings,
            include_drafts=self.include_drafts,
            output_dir_override=self.staging_dir,
        )
        # os.replace cannot overwrite a non-empty directory
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        os.replace(self.staging_dir, self.output_dir)
        self._last_build_at = time.monotonic()

    def rebuild(self) -> bool:
        """Rebuild after a change and tell browsers to reload.

        Returns:
            False when skipped: a rebuild is already running, the previous
            one has just finished, or no watched file actually changed.
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if time.monotonic() - self._last_build_at < self.debounce_seconds:
                return False
            signature = self.source_signature()
            if signature is not None and signature == self._signature:
                return False
            print("Change detected; rebuilding...")
            try:
                self.build()
            except BuildError as exc:
                print(f"Build failed: {exc.source_path}: {exc.message}")
                return False
            finally:
                self._signature = signature
            if self.settle_seconds:
                time.sleep(self.settle_seconds)
            self.broadcaster.reload()
            return True
        finally:
            self._lock.release()

    def on_change(self, path: Path) -> None:
        """Rebuild for source changes; settings are only read at startup."""
        if path == self.config_path:
            stamp = _file_stamp(path)
            if stamp != self._config_stamp:
                self._config_stamp = stamp
                print(f"{CONFIG_FILENAME} changed; restart the server to apply it.")
            return
        if path.is_relative_to(self.project_root / SOURCE_DIR):
            self.rebuild()

    def source_signature(self) -> tuple | None:
        """Return (path, mtime, size) of every file under source/."""
        source_dir = self.project_root / SOURCE_DIR
        if not source_dir.exists():
            return None
        entries: list[tuple] = []
        for path in sorted(source_dir.rglob("*")):
            stamp = _file_stamp(path)
            if stamp is not None:
                rel = path.relative_to(self.project_root).as_posix()
                entries.append((rel, *stamp))
        return tuple(entries) or None

    def watch(self) -> None:
        handler = _SourceChangeHandler(self.on_change, ignored=(self.output_dir, self.staging_dir))
        observer = Observer()
        source_dir = self.project_root / SOURCE_DIR
        if source_dir.exists():
            observer.schedule(handler, str(source_dir), recursive=True)
        # Only for kiln.yaml, which needs a restart
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def _serve_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type("DevRequestHandler", (LiveReloadHandler,), {"snippet": self.snippet})
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        print(f"Serving {self.output_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()
