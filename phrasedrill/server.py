"""Process entry point: configuration, wiring and the HTTP server."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from socketserver import ThreadingMixIn
from typing import Any, Callable, Mapping, Sequence
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import yaml
from dotenv import load_dotenv

from .handler import Handler
from .repository import MongoConfig, RedisRepo, Repository, connect_mongo
from .service import Service

log = logging.getLogger(__name__)

READ_TIMEOUT_SECONDS = 10
CONFIG_NAME = "config"
CONFIG_SUFFIXES = (".yml", ".yaml", ".json")
DEFAULT_CONFIG_DIR = "configs"
ENV_FILE = ".env"
USERS_COLLECTION = "users"

WSGIApp = Callable[..., Any]


class ServerNotRunning(RuntimeError):
    """The server has not been started."""


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _RequestHandler(WSGIRequestHandler):
    timeout = READ_TIMEOUT_SECONDS

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        log.debug("%s - %s", self.address_string(), format % args)


class Server:
    """A threaded WSGI server that runs until shut down."""

    def __init__(self) -> None:
        self._httpd: WSGIServer | None = None
        self._lock = threading.Lock()

    @property
    def port(self) -> int:
        """The port the running server is bound to."""
        with self._lock:
            httpd = self._httpd
        if httpd is None:
            raise ServerNotRunning("сервер не был запущен")
        return int(httpd.server_address[1])

    def run(self, port: str, app: WSGIApp) -> None:
        """Serve ``app`` on all interfaces; blocks until :meth:`shutdown`."""
        httpd = make_server(
            "",
            int(port) if port else 0,
            app,
            server_class=_ThreadingWSGIServer,
            handler_class=_RequestHandler,
        )
        with self._lock:
            self._httpd = httpd
        try:
            httpd.serve_forever()
        finally:
            httpd.server_close()

    def shutdown(self) -> None:
        """Stop a running server and wait for its loop to finish."""
        with self._lock:
            httpd = self._httpd
        if httpd is None:
            raise ServerNotRunning("сервер не был запущен")
        httpd.shutdown()


def _lower_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key).lower(): _lower_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def _find_config(path: Path) -> Path:
    if path.is_file():
        return path
    if path.is_dir():
        for suffix in CONFIG_SUFFIXES:
            candidate = path / f"{CONFIG_NAME}{suffix}"
            if candidate.is_file():
                return candidate
    raise FileNotFoundError(f'Config File "{CONFIG_NAME}" Not Found in "{path}"')


def load_config(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON config file, or ``config.*`` inside a directory.

    Keys are lower-cased, so lookups are case-insensitive.
    """
    source = _find_config(Path(path))
    text = source.read_text(encoding="utf-8")
    data = json.loads(text) if source.suffix == ".json" else yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"config {source} does not hold a mapping")
    return _lower_keys(data)


def _setting(config: Mapping[str, Any], key: str) -> Any:
    value: Any = config
    for part in key.lower().split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def _setting_str(config: Mapping[str, Any], key: str) -> str:
    value = _setting(config, key)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _setting_int(config: Mapping[str, Any], key: str) -> int:
    value = _setting(config, key)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _configure_logging() -> None:
    package_logger = logging.getLogger(__package__ or "phrasedrill")
    if not any(isinstance(h.formatter, _JsonFormatter) for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_JsonFormatter())
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO)


def main(argv: Sequence[str] | None = None) -> int:
    """Start the API server; return a non-zero status on a fatal error."""
    parser = argparse.ArgumentParser(prog="phrasedrill", description="Phrase drill HTTP API server.")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_DIR,
        help="config file, or directory holding config.yml/.yaml/.json",
    )
    args = parser.parse_args(argv)
    _configure_logging()

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        log.error("error initializing configs: %s", exc)
        return 1

    env_path = Path(ENV_FILE)
    if not env_path.is_file():
        log.error("Error loading env file: open %s: no such file or directory", ENV_FILE)
        return 1
    load_dotenv(env_path)

    db_name = _setting_str(config, "db.dbname")
    try:
        client = connect_mongo(MongoConfig(uri=_setting_str(config, "db.uri"), database=db_name))
    except Exception as exc:
        log.error("failed to initialize MongoDB: %s", exc)
        return 1

    try:
        cache = RedisRepo.connect(
            _setting_str(config, "redis.addr"),
            _setting_str(config, "redis.password"),
            _setting_int(config, "redis.db"),
        )
    except Exception as exc:
        log.error("failed to initialize Redis: %s", exc)
        client.close()
        return 1

    repos = Repository(client, db_name, USERS_COLLECTION, cache)
    handlers = Handler(Service(repos))
    server = Server()
    try:
        server.run(_setting_str(config, "port"), handlers.init_routes())
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        log.error("error http server: %s", exc)
        return 1
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())