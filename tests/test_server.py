import asyncio
import io

from quire.build import BuildError
from quire.manifest import ConfigLoadError
from quire.server import DevServer, _ChangeHandler, _ReloadHandler


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = path
        self.is_directory = is_directory


def make_handler(tmp_path, path):
    handler = _ReloadHandler.__new__(_ReloadHandler)
    handler.path = path
    handler.directory = str(tmp_path)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.server_version = ""
    handler.sys_version = ""
    handler._headers_buffer = []
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.send_header = lambda *args, **kwargs: None
    handler.end_headers = lambda: None
    return handler


def test_server_paths_follow_directory_contract(tmp_path):
    server = DevServer(tmp_path, development=True)
    assert server.input_dir == tmp_path / "src"
    assert server.output_dir == tmp_path / "docs"
    assert server.watch_files == (tmp_path / "docs" / "assets" / "manifest.json",)
    assert server.development is True


def test_change_handler_skips_output(tmp_path):
    server = DevServer(tmp_path)
    called = {}

    def fake_rebuild(include_drafts):
        called["drafts"] = include_drafts

    server.rebuild = fake_rebuild
    handler = _ChangeHandler(server, include_drafts=True)

    handler.on_any_event(DummyEvent(str(server.output_dir / "index.html")))
    assert not called

    handler.on_any_event(DummyEvent(str(tmp_path / "src" / "index.md")))
    assert called["drafts"] is True


def test_manifest_changes_trigger_rebuild(tmp_path):
    server = DevServer(tmp_path)
    manifest = tmp_path / "docs" / "assets" / "manifest.json"
    assert server.is_watched(manifest)
    assert not server.is_watched(tmp_path / "docs" / "assets" / "main.css")
    assert server.is_watched(tmp_path / "quire.yaml")
    assert not server.is_watched(tmp_path / "README.md")
    assert not server.is_watched(tmp_path / "node_modules" / "pkg" / "index.js")
    assert server.is_watched(tmp_path / "src" / "posts" / "a.md")


def test_change_handler_directory_event(tmp_path):
    server = DevServer(tmp_path)
    calls = []
    server.rebuild = lambda include_drafts: calls.append(include_drafts)
    handler = _ChangeHandler(server, include_drafts=False)
    handler.on_any_event(DummyEvent(str(tmp_path / "src"), is_directory=True))
    assert calls == []


def test_async_broadcast_tracks_stale_clients(tmp_path):
    server = DevServer(tmp_path)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class BadWS:
        async def send(self, msg):
            raise RuntimeError("fail")

    good = GoodWS()
    bad = BadWS()
    server._ws_clients = {good, bad}
    asyncio.run(server._async_broadcast("hello"))
    assert good.messages == ["hello"]
    assert bad not in server._ws_clients


def test_dev_server_ports(tmp_path):
    server = DevServer(tmp_path)
    assert (server.http_port, server.ws_port) == (8080, 8081)

    override = DevServer(tmp_path, http_port=5055)
    assert override.ws_port == 5056

    explicit = DevServer(tmp_path, http_port=5055, ws_port=6000)
    assert explicit.ws_port == 6000
    assert f":{explicit.ws_port}" in explicit._reload_script

    (tmp_path / "quire.yaml").write_text("port: 9000\nws_port: 9100\n", encoding="utf-8")
    configured = DevServer(tmp_path)
    assert (configured.http_port, configured.ws_port) == (9000, 9100)


def test_rebuild_builds_in_place_then_reloads(monkeypatch, tmp_path):
    server = DevServer(tmp_path, development=True)
    server._post_build_delay = 0.01
    calls = []

    def fake_build(root, include_drafts=False, development=None):
        calls.append(("build", root, include_drafts, development))

    monkeypatch.setattr("quire.server.build_site", fake_build)
    monkeypatch.setattr(
        "quire.server.DevServer._broadcast_reload",
        lambda self=server: calls.append("reload"),
    )
    slept = []
    monkeypatch.setattr("quire.server.time.sleep", lambda secs: slept.append(secs))
    server._compute_signature = lambda: ("sig",)

    server.rebuild(include_drafts=True)
    assert calls == [("build", tmp_path, True, True), "reload"]
    assert slept == [0.01]


def test_rebuild_failure_keeps_serving(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path)
    server._post_build_delay = 0
    server._compute_signature = lambda: ("sig",)
    reloads = []
    server._broadcast_reload = lambda: reloads.append(True)

    def failing_build(*args, **kwargs):
        raise ConfigLoadError(tmp_path / "docs" / "assets" / "manifest.json", "missing")

    monkeypatch.setattr("quire.server.build_site", failing_build)
    server.rebuild(include_drafts=False)
    assert "Build failed" in capsys.readouterr().out
    assert not reloads
    assert server._rebuilding is False

    def broken_template(*args, **kwargs):
        raise BuildError(tmp_path / "src" / "index.md", "Undefined variable: x")

    monkeypatch.setattr("quire.server.build_site", broken_template)
    server._last_rebuild_at = 0.0
    server.rebuild(include_drafts=False)
    assert "Undefined variable: x" in capsys.readouterr().out


def test_rebuild_guard(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    calls = []
    monkeypatch.setattr(
        "quire.server.build_site", lambda *args, **kwargs: calls.append("built")
    )
    server._broadcast_reload = lambda: calls.append("reloaded")
    server._debounce_seconds = 0.0
    server._post_build_delay = 0

    sigs = [("a",), ("a",), ("b",)]

    def fake_sig():
        return sigs.pop(0) if sigs else ("b",)

    server._compute_signature = fake_sig
    server.rebuild(include_drafts=False)
    server._rebuilding = True
    server.rebuild(include_drafts=False)  # skipped while rebuilding
    server._rebuilding = False
    server.rebuild(include_drafts=False)  # same signature
    server.rebuild(include_drafts=False)  # signature changed
    assert calls == ["built", "reloaded", "built", "reloaded"]


def test_compute_signature(tmp_path):
    server = DevServer(tmp_path)
    assert server._compute_signature() is None

    (tmp_path / "src" / "posts").mkdir(parents=True)
    (tmp_path / "src" / "posts" / "a.md").write_text("hi", encoding="utf-8")
    (tmp_path / "quire.yaml").write_text("title: t", encoding="utf-8")
    manifest = tmp_path / "docs" / "assets" / "manifest.json"
    manifest.parent.mkdir(parents=True)
    manifest.write_text("{}", encoding="utf-8")
    (tmp_path / "src" / "missing.md").symlink_to(tmp_path / "nope.md")

    names = [entry[0] for entry in server._compute_signature()]
    assert any(name.endswith("a.md") for name in names)
    assert "quire.yaml" in names
    assert any(name.endswith("manifest.json") for name in names)
    assert not any(name.endswith("missing.md") for name in names)


def test_start_watcher_schedules_inputs(monkeypatch, tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "docs" / "assets").mkdir(parents=True)
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append(("started", True))

    monkeypatch.setattr("quire.server.Observer", DummyObserver)
    server._start_watcher(include_drafts=False)
    assert (str(tmp_path / "src"), True) in scheduled
    assert (str(tmp_path), False) in scheduled
    assert (str(tmp_path / "docs" / "assets"), False) in scheduled
    assert scheduled[-1] == ("started", True)


def test_ws_start_failure(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path, http_port=5055, ws_port=5057)

    async def fake_run():
        raise OSError("bind error")

    monkeypatch.setattr(server, "_run_ws_server", fake_run)
    server._loop = asyncio.new_event_loop()
    server._start_ws()
    assert "failed to start" in capsys.readouterr().out


def test_stop_and_ws_handler(tmp_path):
    server = DevServer(tmp_path)

    class DummyObserver:
        def __init__(self):
            self.calls = []

        def stop(self):
            self.calls.append("stop")

        def join(self):
            self.calls.append("join")

    server._observer = DummyObserver()
    server.stop()
    assert server._observer.calls == ["stop", "join"]

    class DummyWS:
        def __init__(self):
            self.closed = False

        async def wait_closed(self):
            self.closed = True

    ws = DummyWS()
    asyncio.run(server._ws_handler(ws))
    assert ws.closed
    assert ws not in server._ws_clients


def test_send_head_injects_reload_script(tmp_path):
    (tmp_path / "index.html").write_text("<html><body>Hello</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/index.html")
    codes = []
    handler.send_response = lambda code, message=None: codes.append(code)
    assert _ReloadHandler.send_head(handler) is None
    assert codes == [200]
    body = handler.wfile.getvalue().decode()
    assert body.index("WebSocket") < body.index("</body>")


def test_send_head_serves_directory_index(tmp_path):
    posts = tmp_path / "posts" / "hello"
    posts.mkdir(parents=True)
    (posts / "index.html").write_text("<html>index</html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/hello/")
    handler.send_response = lambda code, message=None: None
    assert _ReloadHandler.send_head(handler) is None
    assert b"reload" in handler.wfile.getvalue()


def test_send_head_falls_back_for_assets(tmp_path):
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "main.css").write_text("body{}", encoding="utf-8")
    handler = make_handler(tmp_path, "/assets/main.css")
    handler.send_response = lambda code, message=None: None
    result = _ReloadHandler.send_head(handler)
    assert result is not None
    result.close()


def test_missing_paths_return_404(tmp_path):
    (tmp_path / "posts").mkdir()
    for path in ("/missing.html", "/posts/"):
        handler = make_handler(tmp_path, path)
        called = {}
        handler.send_response = lambda code, message=None: None
        handler.send_error = lambda code, message=None: called.setdefault("error", code)
        assert _ReloadHandler.send_head(handler) is None
        assert called["error"] == 404


def test_serve_404_uses_custom_page(tmp_path):
    (tmp_path / "404.html").write_text("<html><body>oops</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/missing")
    codes = []
    handler.send_response = lambda code, message=None: codes.append(code)
    handler.send_error = lambda *args, **kwargs: codes.append("error")
    assert _ReloadHandler._serve_404(handler) is None
    assert codes == [404]
    body = handler.wfile.getvalue().decode()
    assert "oops" in body
    assert "reload" in body
