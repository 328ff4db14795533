"""
Container runtime collaborator backed by Docker Compose and the Docker SDK.

Lifecycle commands (up / stop / rm / down / ps / pull) go through the
``docker compose`` CLI for the configured file and project. Container
inspection (health, logs, exec, archives), pruning and network removal go
through the ``docker`` SDK.
"""

from __future__ import annotations

import io
import subprocess
import tarfile
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Protocol

import docker
from docker.errors import APIError, DockerException, NotFound

from harness.core.exceptions import RuntimeCommandError
from harness.core.logging import get_logger

if TYPE_CHECKING:
    from docker.models.containers import Container

logger = get_logger("runtime")

CommandRunner = Callable[[list[str]], subprocess.CompletedProcess]


class ContainerRuntime(Protocol):
    """What the orchestrator and teardown need from a container runtime."""

    def start(self, services: list[str]) -> None: ...

    def stop(self, services: list[str]) -> None: ...

    def remove(self, services: list[str]) -> None: ...

    def down(self) -> None: ...

    def prune_containers(self) -> None: ...

    def remove_network(self, name: str) -> None: ...

    def health_status(self, name: str) -> str: ...

    def logs(self, name: str, tail: int = 100) -> str: ...


def _run(command: list[str], timeout: float = 300.0) -> subprocess.CompletedProcess:
    return subprocess.run(
        command,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class ComposeRuntime:
    """
    Docker Compose project driven from Python.

    Usage:
        runtime = ComposeRuntime("docker-compose.integration.yml", "figure-collector-integration")
        runtime.start(["mongodb-test"])
        runtime.health_status("mongodb-test")  # "starting" / "healthy" / ...
        runtime.down()
    """

    def __init__(
        self,
        compose_file: str,
        project: str,
        client: docker.DockerClient | None = None,
        runner: CommandRunner = _run,
    ):
        self.compose_file = compose_file
        self.project = project
        self._client = client
        self._runner = runner

    # -------------------------------------------------------------------------
    # Docker SDK
    # -------------------------------------------------------------------------

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def ping(self) -> bool:
        """True if the Docker daemon answers."""
        try:
            return bool(self.client.ping())
        except DockerException:
            return False

    def _container(self, name: str) -> "Container":
        container = self.client.containers.get(name)
        container.reload()
        return container

    # -------------------------------------------------------------------------
    # Compose CLI
    # -------------------------------------------------------------------------

    def _compose(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        command = ["docker", "compose", "-f", self.compose_file, "-p", self.project, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = self._runner(command)
        except subprocess.TimeoutExpired as e:
            raise RuntimeCommandError(command, -1, f"timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            raise RuntimeCommandError(command, 127, "docker CLI not found") from e
        if check and result.returncode != 0:
            raise RuntimeCommandError(command, result.returncode, result.stderr or "")
        return result

    def pull(self, services: list[str]) -> None:
        self._compose("pull", *services)

    def start(self, services: list[str]) -> None:
        logger.info(f"Starting {', '.join(services)}")
        self._compose("up", "-d", *services)

    def stop(self, services: list[str]) -> None:
        if services:
            self._compose("stop", *services)

    def remove(self, services: list[str]) -> None:
        if services:
            self._compose("rm", "-f", "-s", "-v", *services)

    def down(self) -> None:
        self._compose("down", "--volumes", "--remove-orphans")

    def ps(self) -> str:
        return self._compose("ps", check=False).stdout

    # -------------------------------------------------------------------------
    # Container inspection
    # -------------------------------------------------------------------------

    def health_status(self, name: str) -> str:
        """
        Docker health status of a container.

        Returns ``healthy``, ``unhealthy``, ``starting`` or ``not-found``.
        A running container without a healthcheck counts as ``healthy``;
        a container that is not running reports its state (``exited``, ...).
        """
        try:
            container = self._container(name)
        except NotFound:
            return "not-found"

        health = container.attrs.get("State", {}).get("Health") or {}
        if health:
            return health.get("Status", "unknown")
        if container.status == "running":
            return "healthy"
        return container.status

    def logs(self, name: str, tail: int = 100) -> str:
        """Last ``tail`` lines of a container's logs."""
        try:
            raw = self._container(name).logs(tail=tail)
        except NotFound:
            return f"Container '{name}' not found"
        except APIError as e:
            return f"Error fetching logs: {e}"
        return raw.decode("utf-8", errors="replace")

    def exec(self, name: str, command: list[str]) -> tuple[int, str]:
        """Run a command inside a running container."""
        result = self._container(name).exec_run(command)
        output = result.output.decode("utf-8", errors="replace") if result.output else ""
        return result.exit_code, output

    def copy_from(self, name: str, path: str, destination: Path) -> bool:
        """
        Copy ``path`` out of a container into ``destination``.

        Returns False when the container or path does not exist.
        """
        try:
            stream, _ = self._container(name).get_archive(path)
        except NotFound:
            return False

        buffer = io.BytesIO(b"".join(stream))
        destination.mkdir(parents=True, exist_ok=True)
        with tarfile.open(fileobj=buffer) as archive:
            archive.extractall(destination, filter="data")
        return True

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def prune_containers(self) -> None:
        """Remove stopped containers that belong to this project."""
        self.client.containers.prune(
            filters={"label": f"com.docker.compose.project={self.project}"}
        )

    def remove_network(self, name: str) -> None:
        try:
            self.client.networks.get(name).remove()
        except NotFound:
            logger.debug(f"Network {name} already removed")
