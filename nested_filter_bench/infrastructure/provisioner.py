"""
Ephemeral MongoDB provisioning for benchmark iterations.

``EphemeralMongo`` owns exactly one disposable database for the lifetime of a
``with`` block. Two modes are supported:

- ``mongod``: launch a private ``mongod`` process on a free localhost port with
  a temporary data directory (optionally as a single-node replica set), and
  tear the whole thing down afterwards.
- ``external``: connect to an already running server (``MONGO_URI``) and use a
  uniquely named database that is dropped afterwards.

Readiness checks and transient connection failures are retried with tenacity.
"""

from __future__ import annotations

import shutil
import socket
import subprocess
import tempfile
import uuid
from pathlib import Path
from typing import Any, Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError
from tenacity import (
    Retrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_fixed,
)

from nested_filter_bench.config import Settings, get_settings
from nested_filter_bench.errors import ProvisioningError
from nested_filter_bench.utils.logging import get_logger

log = get_logger(__name__)

LOCALHOST = "127.0.0.1"
REPLICA_SET_NAME = "singleNodeReplSet"
READINESS_TIMEOUT_MS = 500
READINESS_INTERVAL_SECONDS = 0.25
STOP_GRACE_SECONDS = 10.0
LOG_TAIL_LINES = 20


class _NotWritablePrimary(Exception):
    """Replica set member has not been elected primary yet."""


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((LOCALHOST, 0))
        return sock.getsockname()[1]


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(PyMongoError),
    reraise=True,
)
def _ping(client: MongoClient) -> None:
    client.admin.command("ping")


class EphemeralMongo:
    """
    Disposable MongoDB database for a single benchmark iteration.

    Example
    -------
        with EphemeralMongo(settings) as mongo:
            collection = mongo.database["outers"]
            collection.insert_many(documents)
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._process: Optional[subprocess.Popen] = None
        self._dbpath: Optional[Path] = None
        self._client: Optional[MongoClient] = None
        self._database_name: Optional[str] = None
        self.connection_string: Optional[str] = None

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            raise ProvisioningError("Ephemeral MongoDB instance is not running")
        return self._client

    @property
    def database(self) -> Database:
        return self.client[self._database_name]

    def __enter__(self) -> "EphemeralMongo":
        try:
            return self.start()
        except BaseException:
            self.stop()
            raise

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def start(self) -> "EphemeralMongo":
        if self._settings.mongo_mode == "external":
            self._start_external()
        else:
            self._start_mongod()
        log.debug(
            "Ephemeral MongoDB ready",
            extra={"mode": self._settings.mongo_mode, "database": self._database_name},
        )
        return self

    def stop(self) -> None:
        """Release the client, the mongod process and its data directory."""
        if self._client is not None:
            if self._settings.mongo_mode == "external" and self._database_name:
                try:
                    self._client.drop_database(self._database_name)
                except PyMongoError:
                    log.warning(
                        "Could not drop ephemeral database",
                        extra={"database": self._database_name},
                        exc_info=True,
                    )
            self._client.close()
            self._client = None

        if self._process is not None:
            if self._process.poll() is None:
                self._process.terminate()
                try:
                    self._process.wait(timeout=STOP_GRACE_SECONDS)
                except subprocess.TimeoutExpired:
                    log.warning("mongod did not stop in time; killing", extra={"pid": self._process.pid})
                    self._process.kill()
                    self._process.wait()
            self._process = None

        if self._dbpath is not None:
            shutil.rmtree(self._dbpath, ignore_errors=True)
            self._dbpath = None

    def _client_options(self) -> dict[str, Any]:
        settings = self._settings
        return {
            "tz_aware": True,
            "socketTimeoutMS": settings.mongo_socket_timeout_ms,
            "connectTimeoutMS": settings.mongo_connect_timeout_ms,
            "wTimeoutMS": settings.mongo_wtimeout_ms,
            "serverSelectionTimeoutMS": int(settings.mongo_startup_timeout_seconds * 1000),
        }

    def _start_external(self) -> None:
        settings = self._settings
        self.connection_string = settings.mongo_uri
        self._client = MongoClient(settings.mongo_uri, **self._client_options())
        try:
            _ping(self._client)
        except PyMongoError as exc:
            raise ProvisioningError(f"MongoDB at {settings.mongo_uri} is unreachable: {exc}") from exc
        self._database_name = f"{settings.mongo_db_name}_{uuid.uuid4().hex[:12]}"

    def _start_mongod(self) -> None:
        settings = self._settings
        port = _free_port()
        self._dbpath = Path(tempfile.mkdtemp(prefix="nested_filter_bench_"))
        command = [
            settings.mongod_binary,
            "--dbpath",
            str(self._dbpath),
            "--port",
            str(port),
            "--bind_ip",
            LOCALHOST,
            "--logpath",
            str(self._log_path),
        ]
        if settings.mongo_single_node_replset:
            command += ["--replSet", REPLICA_SET_NAME]

        log.debug("Launching mongod", extra={"command": " ".join(command)})
        try:
            self._process = subprocess.Popen(
                command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as exc:
            raise ProvisioningError(f"Could not launch {settings.mongod_binary!r}: {exc}") from exc

        self.connection_string = f"mongodb://{LOCALHOST}:{port}/?directConnection=true"
        admin_client = MongoClient(
            self.connection_string,
            serverSelectionTimeoutMS=READINESS_TIMEOUT_MS,
            connectTimeoutMS=READINESS_TIMEOUT_MS,
        )
        try:
            self._wait_until_reachable(admin_client)
            if settings.mongo_single_node_replset:
                self._initiate_replica_set(admin_client, port)
        finally:
            admin_client.close()

        self._client = MongoClient(self.connection_string, **self._client_options())
        self._database_name = settings.mongo_db_name

    @property
    def _log_path(self) -> Path:
        return self._dbpath / "mongod.log"

    def _log_tail(self) -> str:
        try:
            lines = self._log_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            return ""
        return "\n".join(lines[-LOG_TAIL_LINES:])

    def _ensure_running(self) -> None:
        returncode = self._process.poll()
        if returncode is not None:
            raise ProvisioningError(
                f"mongod exited with code {returncode} during startup\n{self._log_tail()}"
            )

    def _retrying(self, *exception_types: type) -> Retrying:
        return Retrying(
            stop=stop_after_delay(self._settings.mongo_startup_timeout_seconds),
            wait=wait_fixed(READINESS_INTERVAL_SECONDS),
            retry=retry_if_exception_type(exception_types),
            reraise=True,
        )

    def _wait_until_reachable(self, admin_client: MongoClient) -> None:
        try:
            for attempt in self._retrying(PyMongoError):
                with attempt:
                    self._ensure_running()
                    admin_client.admin.command("ping")
        except PyMongoError as exc:
            raise ProvisioningError(
                f"mongod did not accept connections within "
                f"{self._settings.mongo_startup_timeout_seconds}s: {exc}\n{self._log_tail()}"
            ) from exc

    def _initiate_replica_set(self, admin_client: MongoClient, port: int) -> None:
        config = {
            "_id": REPLICA_SET_NAME,
            "members": [{"_id": 0, "host": f"{LOCALHOST}:{port}"}],
        }
        try:
            admin_client.admin.command("replSetInitiate", config)
            for attempt in self._retrying(PyMongoError, _NotWritablePrimary):
                with attempt:
                    self._ensure_running()
                    if not admin_client.admin.command("hello").get("isWritablePrimary"):
                        raise _NotWritablePrimary(REPLICA_SET_NAME)
        except (PyMongoError, _NotWritablePrimary) as exc:
            raise ProvisioningError(
                f"Replica set {REPLICA_SET_NAME!r} did not elect a primary: {exc!r}"
            ) from exc


__all__ = ["EphemeralMongo", "REPLICA_SET_NAME"]
