# backend/kraft/services/drivers/docker_driver.py
"""
Container backend built on the Docker Engine API.

Snapshots are committed images; their storage locator is
``docker-image://<image id>``. Commands run through a small shell wrapper
that records the PID so a timed-out command can be killed.
"""
import shlex
import logging
from typing import Optional, Dict, List, Any

import docker
from docker.errors import APIError, NotFound, ImageNotFound, DockerException

from kraft.exceptions import DriverError, DriverNotFoundError
from kraft.services.drivers.base import (
    InstanceDriver, BootRequest, BootResult, ExecResult, CaptureResult,
)

logger = logging.getLogger(__name__)

IMAGE_LOCATOR_PREFIX = "docker-image://"
VNC_PORT = 5900


def _pidfile(execution_id: str) -> str:
    return f"/tmp/kraft-exec-{execution_id}.pid"


class DockerDriver(InstanceDriver):
    """Driver for container instances."""

    name = "docker"

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self.client = client or docker.from_env()
        self._verify_connection()

    def _verify_connection(self) -> None:
        """Verify connection to Docker daemon."""
        try:
            self.client.ping()
            logger.info("Connected to Docker daemon")
        except Exception as e:
            logger.error(f"Failed to connect to Docker daemon: {e}")
            raise DriverError("Cannot connect to Docker daemon", driver=self.name)

    def _fail(self, operation: str, error: Exception) -> DriverError:
        logger.error(f"Docker {operation} failed: {error}")
        return DriverError(str(error), driver=self.name, operation=operation)

    # Lifecycle

    def boot(self, request: BootRequest, timeout: float) -> BootResult:
        image = self._image_for(request)
        name = f"kraft-{request.instance_id}"
        labels = {
            "kraft.instance_id": str(request.instance_id),
            "kraft.disk_mb": str(request.disk_mb),
        }
        ports = [VNC_PORT] if request.vnc_enabled else None

        try:
            self._ensure_image(image)
            container = self.client.api.create_container(
                image=image,
                name=name,
                hostname=name[:63],
                detach=True,
                tty=True,
                stdin_open=True,
                ports=ports,
                host_config=self.client.api.create_host_config(
                    cpu_count=request.cpu_count,
                    mem_limit=f"{request.memory_mb}m",
                    port_bindings={VNC_PORT: None} if request.vnc_enabled else None,
                    restart_policy={"Name": "unless-stopped"},
                ),
                environment=request.environment,
                labels=labels,
            )
            container_id = container["Id"]
        except NotFound as e:
            raise DriverError(f"Image not available: {e}", driver=self.name, operation="create")
        except (APIError, DockerException) as e:
            raise self._fail("create", e)

        try:
            self.client.api.start(container_id)
        except (APIError, DockerException) as e:
            self._remove_quietly(container_id)
            raise self._fail("create", e)

        logger.info(f"Booted container {name} ({container_id[:12]}) from {image}")
        return BootResult(backend_ref=container_id, details={"image": image})

    def _remove_quietly(self, container_id: str) -> None:
        try:
            self.client.api.remove_container(container_id, force=True, v=True)
            logger.info(f"Removed unstarted container {container_id[:12]}")
        except (APIError, DockerException) as e:
            logger.warning(f"Could not remove unstarted container {container_id[:12]}: {e}")

    def _image_for(self, request: BootRequest) -> str:
        if request.restore_from:
            if not request.restore_from.startswith(IMAGE_LOCATOR_PREFIX):
                raise DriverError(
                    f"Unsupported snapshot locator: {request.restore_from}",
                    driver=self.name, operation="restore",
                )
            return request.restore_from[len(IMAGE_LOCATOR_PREFIX):]
        return request.image

    def start(self, backend_ref: str, timeout: float) -> None:
        self._container_call("start", backend_ref, lambda: self.client.api.start(backend_ref))

    def stop(self, backend_ref: str, timeout: float) -> None:
        grace = max(1, int(timeout) - 5)
        self._container_call("stop", backend_ref, lambda: self.client.api.stop(backend_ref, timeout=grace))

    def restart(self, backend_ref: str, timeout: float) -> None:
        grace = max(1, int(timeout) - 5)
        self._container_call(
            "restart", backend_ref, lambda: self.client.api.restart(backend_ref, timeout=grace)
        )

    def teardown(self, backend_ref: str, timeout: float) -> None:
        self._container_call(
            "delete", backend_ref,
            lambda: self.client.api.remove_container(backend_ref, force=True, v=True),
        )

    def _container_call(self, operation: str, container_id: str, call) -> None:
        try:
            call()
            logger.info(f"Container {operation}: {container_id[:12]}")
        except NotFound:
            logger.warning(f"Container not found: {container_id}")
            raise DriverNotFoundError(f"Container not found: {container_id}",
                                      driver=self.name, operation=operation)
        except (APIError, DockerException) as e:
            raise self._fail(operation, e)

    # Commands

    def execute(self, backend_ref: str, command: str, timeout: float, execution_id: str) -> ExecResult:
        wrapped = [
            "/bin/sh", "-c",
            f"echo $$ > {_pidfile(execution_id)}; exec /bin/sh -c {shlex.quote(command)}",
        ]
        try:
            exec_id = self.client.api.exec_create(backend_ref, wrapped, stdout=True, stderr=True)["Id"]
            stdout, stderr = self.client.api.exec_start(exec_id, demux=True)
            exit_code = self.client.api.exec_inspect(exec_id).get("ExitCode")
        except NotFound:
            raise DriverNotFoundError(f"Container not found: {backend_ref}",
                                      driver=self.name, operation="execute")
        except (APIError, DockerException) as e:
            raise self._fail("execute", e)

        return ExecResult(
            exit_code=exit_code if exit_code is not None else -1,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace"),
        )

    def cancel_execution(self, backend_ref: str, execution_id: str) -> None:
        pidfile = _pidfile(execution_id)
        try:
            container = self.client.containers.get(backend_ref)
            container.exec_run(
                ["/bin/sh", "-c", f"kill -9 $(cat {pidfile}) 2>/dev/null; rm -f {pidfile}"],
                detach=True,
            )
            logger.info(f"Killed execution {execution_id} in {backend_ref[:12]}")
        except (NotFound, APIError, DockerException) as e:
            logger.warning(f"Could not cancel execution {execution_id}: {e}")

    # Snapshots

    def capture(self, backend_ref: str, name: str, timeout: float) -> CaptureResult:
        try:
            container = self.client.containers.get(backend_ref)
            image = container.commit(
                repository=f"kraft-snapshot-{backend_ref[:12]}",
                tag="latest",
                message=f"Snapshot {name} of {container.name}",
                conf={"Labels": {"kraft.snapshot_name": name}},
            )
        except NotFound:
            raise DriverNotFoundError(f"Container not found: {backend_ref}",
                                      driver=self.name, operation="snapshot")
        except (APIError, DockerException) as e:
            raise self._fail("snapshot", e)

        size = image.attrs.get("Size", 0) if image.attrs else 0
        logger.info(f"Created snapshot: {name} ({image.id[:19]})")
        return CaptureResult(storage_locator=f"{IMAGE_LOCATOR_PREFIX}{image.id}", size_bytes=size or 0)

    def delete_capture(self, storage_locator: str, timeout: float) -> None:
        image_id = storage_locator[len(IMAGE_LOCATOR_PREFIX):]
        try:
            self.client.images.remove(image_id, force=True)
            logger.info(f"Deleted snapshot image: {image_id[:19]}")
        except (NotFound, ImageNotFound):
            raise DriverNotFoundError(f"Image not found: {image_id}",
                                      driver=self.name, operation="delete snapshot")
        except (APIError, DockerException) as e:
            raise self._fail("delete snapshot", e)

    # Observability

    def logs(self, backend_ref: str, lines: int, timeout: float) -> List[str]:
        try:
            output = self.client.api.logs(backend_ref, tail=lines, timestamps=False)
        except NotFound:
            raise DriverNotFoundError(f"Container not found: {backend_ref}",
                                      driver=self.name, operation="read logs for")
        except (APIError, DockerException) as e:
            raise self._fail("read logs for", e)
        return output.decode("utf-8", errors="replace").splitlines()

    def stats(self, backend_ref: str, timeout: float) -> Optional[Dict[str, float]]:
        try:
            container = self.client.containers.get(backend_ref)
            if container.status != "running":
                return None
            stats = container.stats(stream=False)
        except NotFound:
            raise DriverNotFoundError(f"Container not found: {backend_ref}",
                                      driver=self.name, operation="collect stats for")
        except (APIError, DockerException) as e:
            raise self._fail("collect stats for", e)

        try:
            cpu_delta = stats["cpu_stats"]["cpu_usage"]["total_usage"] - \
                        stats["precpu_stats"]["cpu_usage"]["total_usage"]
            system_delta = stats["cpu_stats"].get("system_cpu_usage", 0) - \
                           stats["precpu_stats"].get("system_cpu_usage", 0)
        except KeyError as e:
            logger.warning(f"Incomplete stats for {backend_ref[:12]}: {e}")
            return None
        cpu_percent = (cpu_delta / system_delta) * 100.0 if system_delta > 0 else 0.0

        memory_usage = stats.get("memory_stats", {}).get("usage", 0)
        network_stats = stats.get("networks", {})

        return {
            "cpu_percent": round(cpu_percent, 2),
            "memory_mb": round(memory_usage / (1024 * 1024), 2),
            "network_rx_bytes": float(sum(n.get("rx_bytes", 0) for n in network_stats.values())),
            "network_tx_bytes": float(sum(n.get("tx_bytes", 0) for n in network_stats.values())),
        }

    def health(self) -> Dict[str, Any]:
        try:
            self.client.ping()
            version = self.client.version().get("Version")
            return {"status": "healthy", "version": version}
        except Exception as e:
            logger.warning(f"Docker health check failed: {e}")
            return {"status": "unhealthy", "error": "Docker daemon unreachable"}

    # Utility Methods

    def _ensure_image(self, image: str) -> None:
        """Pull image if not present locally."""
        try:
            self.client.images.get(image)
            logger.debug(f"Image already present: {image}")
        except ImageNotFound:
            logger.info(f"Pulling image: {image}")
            self.client.images.pull(image)
            logger.info(f"Successfully pulled: {image}")
