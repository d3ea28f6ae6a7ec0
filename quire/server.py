"""Development server for Quire.

Serves the built site with live reload:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Watches the input directory, quire.yaml and the asset manifest, rebuilding
  and reloading clients on change.

The site is rebuilt in place because the output directory also holds the
bundler's assets and manifest.

Key classes:
- DevServer: Main class for running the development server.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _ChangeHandler: File system event handler for triggering rebuilds.
"""

from __future__ import annotations

import asyncio
import functools
import json
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildError, build_site
from .config import configure
from .manifest import ConfigLoadError
from .settings import CONFIG_FILENAME, load_settings


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=8081)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        # Never expose directory listings; treat as missing content.
        return self._serve_404()

    def _inject(self, content: str) -> bytes:
        if "</body>" in content:
            content = content.replace("</body>", f"{self.reload_script}</body>")
        else:
            content += self.reload_script
        return content.encode("utf-8")

    def _serve_404(self):
        """Serve 404.html (when present) with injected reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            encoded = self._inject(error_page.read_text(encoding="utf-8"))
            self.send_response(404)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path = self.translate_path(self.path)
        path_obj = Path(path)
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if index_path.exists():
                path = str(index_path)
                path_obj = index_path
            else:
                return self._serve_404()
        elif not path_obj.exists():
            return self._serve_404()

        if path.endswith(".html"):
            encoded = self._inject(path_obj.read_text(encoding="utf-8"))
            self.send_response(200)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)
            return None
        return super().send_head()


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        project_root: Root directory of the project.
        settings: Project settings.
        development: Mode passed to every build.
        input_dir: Directory watched for content changes.
        output_dir: Directory where built site is served.
        watch_files: Extra files whose changes trigger a rebuild.
        ws_port: Port for WebSocket connections.
        http_port: Port for HTTP server.
    """

    def __init__(
        self,
        project_root: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
        development: bool | None = None,
    ):
        self.project_root = project_root
        self.settings = load_settings(project_root, development=development)
        self.development = self.settings.development
        config = configure(self.settings, {})
        self.input_dir = config.dirs.input_path(project_root)
        self.output_dir = config.dirs.output_path(project_root)
        self.watch_files = tuple(config.watch_files)
        base_http = int(http_port or self.settings.port)
        if ws_port is not None:
            resolved_ws = ws_port
        elif http_port is None and self.settings.ws_port is not None:
            resolved_ws = self.settings.ws_port
        else:
            resolved_ws = base_http + 1
        self.ws_port = resolved_ws
        self.http_port = base_http
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._rebuilding = False
        self._last_rebuild_at = 0.0
        self._last_signature: tuple | None = None
        self._debounce_seconds = 0.05
        self._post_build_delay = 0.05

    def start(
        self, include_drafts: bool = False
    ) -> None:  # pragma: no cover - integration path
        build_site(
            self.project_root,
            include_drafts=include_drafts,
            development=self.development,
        )
        self._last_signature = self._compute_signature()
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_watcher(include_drafts)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        print(f"Serving {self.output_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            print(f"WebSocket server failed to start (port {self.ws_port}): {exc}")
            return

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_watcher(self, include_drafts: bool) -> None:
        handler = _ChangeHandler(self, include_drafts)
        observer = Observer()
        if self.input_dir.exists():
            observer.schedule(handler, str(self.input_dir), recursive=True)
        # quire.yaml lives at the project root
        observer.schedule(handler, str(self.project_root), recursive=False)
        for watched in {path.parent for path in self.watch_files}:
            if watched.exists():
                observer.schedule(handler, str(watched), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self, include_drafts: bool) -> None:
        now = time.time()
        if self._rebuilding or (now - self._last_rebuild_at) < self._debounce_seconds:
            return
        signature = self._compute_signature()
        if signature is not None and signature == self._last_signature:
            return
        self._rebuilding = True
        try:
            print("Change detected; rebuilding...")
            try:
                build_site(
                    self.project_root,
                    include_drafts=include_drafts,
                    development=self.development,
                )
            except (BuildError, ConfigLoadError) as exc:
                print(f"Build failed: {exc}")
                return
            self._last_signature = signature
            if self._post_build_delay:
                time.sleep(self._post_build_delay)
            self._broadcast_reload()
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()

    def _watched_paths(self) -> list[Path]:
        paths: list[Path] = []
        if self.input_dir.exists():
            paths.extend(p for p in sorted(self.input_dir.rglob("*")) if not p.is_dir())
        paths.append(self.project_root / CONFIG_FILENAME)
        paths.extend(self.watch_files)
        return paths

    def _compute_signature(self) -> tuple | None:
        entries: list[tuple] = []
        for path in self._watched_paths():
            try:
                stat = path.stat()
            except OSError:
                continue
            rel = path.relative_to(self.project_root)
            entries.append((str(rel), stat.st_mtime_ns, stat.st_size))
        return tuple(entries) if entries else None

    def is_watched(self, path: Path) -> bool:
        """Return True when a change to ``path`` should trigger a rebuild."""
        if path in self.watch_files:
            return True
        if "node_modules" in path.parts:
            return False
        try:
            path.relative_to(self.output_dir)
            return False
        except ValueError:
            pass
        if path.parent == self.project_root:
            return path.name == CONFIG_FILENAME
        return True


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer, include_drafts: bool):
        super().__init__()
        self.server = server
        self.include_drafts = include_drafts

    def on_any_event(self, event):
        if event.is_directory:
            return
        if not self.server.is_watched(Path(event.src_path)):
            return
        self.server.rebuild(self.include_drafts)
