import json
import threading
import time
import urllib.request

import pytest

from phrasedrill.server import Server, ServerNotRunning, load_config, main


def _pong_app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"pong"]


def _echo_path_app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [environ["PATH_INFO"].encode("utf-8")]


def _wait_for_port(server, limit=5.0):
    deadline = time.monotonic() + limit
    while True:
        try:
            return server.port
        except ServerNotRunning:
            if time.monotonic() > deadline:
                raise
            time.sleep(0.01)


def _start(app):
    server = Server()
    thread = threading.Thread(target=server.run, args=("0", app), daemon=True)
    thread.start()
    port = _wait_for_port(server)
    return server, thread, port


def test_shutdown_before_run_raises():
    with pytest.raises(ServerNotRunning, match="сервер не был запущен"):
        Server().shutdown()


def test_port_before_run_raises():
    with pytest.raises(ServerNotRunning):
        _ = Server().port


def test_run_serves_app_until_shutdown():
    server, thread, port = _start(_pong_app)
    try:
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/", timeout=5) as response:
            status = response.status
            body = response.read()
    finally:
        server.shutdown()
        thread.join(5)
    assert status == 200
    assert body == b"pong"
    assert not thread.is_alive()


def test_run_passes_request_path_to_app():
    server, thread, port = _start(_echo_path_app)
    try:
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/api/auth/sign-in", timeout=5) as response:
            body = response.read()
    finally:
        server.shutdown()
        thread.join(5)
    assert body == b"/api/auth/sign-in"


def test_bound_port_is_positive_when_asked_for_any():
    server, thread, port = _start(_pong_app)
    server.shutdown()
    thread.join(5)
    assert port > 0


def test_load_config_from_directory_yaml(tmp_path):
    (tmp_path / "config.yml").write_text(
        "port: 8000\ndb:\n  URI: mongodb://localhost:27017\n  dbname: drills\n",
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config["port"] == 8000
    assert config["db"] == {"uri": "mongodb://localhost:27017", "dbname": "drills"}


def test_load_config_from_json_file(tmp_path):
    path = tmp_path / "settings.json"
    data = {"redis": {"addr": "localhost:6379", "db": 2}}
    path.write_text(json.dumps(data), encoding="utf-8")
    assert load_config(path) == data


def test_load_config_lowercases_keys(tmp_path):
    (tmp_path / "config.yaml").write_text("Redis:\n  Addr: host:1\n", encoding="utf-8")
    assert load_config(tmp_path) == {"redis": {"addr": "host:1"}}


def test_load_config_empty_file_is_empty_mapping(tmp_path):
    (tmp_path / "config.yml").write_text("", encoding="utf-8")
    assert load_config(tmp_path) == {}


def test_load_config_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nowhere")


def test_load_config_directory_without_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path)


def test_load_config_non_mapping_raises(tmp_path):
    (tmp_path / "config.yml").write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(tmp_path)


def test_main_fails_without_config(tmp_path):
    assert main(["--config", str(tmp_path / "missing")]) == 1


def test_main_fails_without_env_file(tmp_path, monkeypatch):
    config_dir = tmp_path / "configs"
    config_dir.mkdir()
    (config_dir / "config.yml").write_text("port: 8000\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    assert main([]) == 1