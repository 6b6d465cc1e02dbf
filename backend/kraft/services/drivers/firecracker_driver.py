# backend/kraft/services/drivers/firecracker_driver.py
"""HTTP client for the Firecracker microVM manager."""
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from kraft.exceptions import DriverError, DriverNotFoundError, OperationTimeoutError
from kraft.services.drivers.base import (
    InstanceDriver, BootRequest, BootResult, ExecResult, CaptureResult,
)

logger = logging.getLogger(__name__)

SNAPSHOT_LOCATOR_PREFIX = "firecracker-snapshot://"
IDEMPOTENT_METHODS = {"GET", "DELETE"}


class FirecrackerDriver(InstanceDriver):
    """Driver for microVM instances."""

    name = "firecracker"

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        admin_key: str = "",
        session: Optional[requests.Session] = None,
        retries: int = 3,
        backoff_seconds: float = 0.5,
    ):
        if not base_url:
            raise DriverError("Firecracker API URL is not configured", driver=self.name)
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "X-Admin-Key": admin_key,
            "Content-Type": "application/json",
        })
        self.retries = retries
        self.backoff_seconds = backoff_seconds

    def _request(
        self,
        method: str,
        path: str,
        timeout: float,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        # Only idempotent calls are retried on connection failures
        attempts = self.retries + 1 if method in IDEMPOTENT_METHODS else 1

        for attempt in range(attempts):
            try:
                response = self.session.request(method, url, json=json, params=params, timeout=timeout)
                break
            except requests.Timeout:
                raise OperationTimeoutError(operation, timeout)
            except requests.ConnectionError as e:
                if attempt + 1 >= attempts:
                    logger.error(f"Firecracker {method} {path} unreachable: {e}")
                    raise DriverError(str(e), driver=self.name, operation=operation)
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(f"Firecracker {method} {path} failed, retrying in {delay:g}s")
                time.sleep(delay)
            except requests.RequestException as e:
                raise DriverError(str(e), driver=self.name, operation=operation)

        if response.status_code == 404:
            raise DriverNotFoundError(f"{path} not found", driver=self.name, operation=operation)
        if not response.ok:
            logger.error(f"Firecracker {method} {path} -> {response.status_code}: {response.text[:200]}")
            raise DriverError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                driver=self.name, operation=operation,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise DriverError("Malformed response from microVM manager",
                              driver=self.name, operation=operation)

    def boot(self, request: BootRequest, timeout: float) -> BootResult:
        payload = {
            "instanceId": str(request.instance_id),
            "image": request.image,
            "memory": f"{request.memory_mb}M",
            "cpuCount": request.cpu_count,
            "diskSize": f"{request.disk_mb}M",
            "vnc": request.vnc_enabled,
            "environment": request.environment,
            "metadata": request.metadata,
        }
        if request.restore_from:
            payload["snapshotId"] = self._snapshot_id(request.restore_from)

        data = self._request("POST", "/instances", timeout, "create", json=payload) or {}
        vm_id = data.get("id")
        if not vm_id:
            raise DriverError("microVM manager returned no instance id", driver=self.name, operation="create")
        logger.info(f"Booted microVM {vm_id} for instance {request.instance_id}")
        return BootResult(backend_ref=str(vm_id), details=data)

    def start(self, backend_ref: str, timeout: float) -> None:
        self._request("POST", f"/instances/{backend_ref}/start", timeout, "start")

    def stop(self, backend_ref: str, timeout: float) -> None:
        self._request("POST", f"/instances/{backend_ref}/stop", timeout, "stop")

    def restart(self, backend_ref: str, timeout: float) -> None:
        self._request("POST", f"/instances/{backend_ref}/restart", timeout, "restart")

    def teardown(self, backend_ref: str, timeout: float) -> None:
        self._request("DELETE", f"/instances/{backend_ref}", timeout, "delete")

    def execute(self, backend_ref: str, command: str, timeout: float, execution_id: str) -> ExecResult:
        data = self._request(
            "POST", f"/instances/{backend_ref}/exec", timeout, "execute command on",
            json={"command": command, "timeout": int(timeout * 1000), "executionId": execution_id},
        ) or {}
        return ExecResult(
            exit_code=int(data.get("exitCode", -1)),
            stdout=data.get("stdout", ""),
            stderr=data.get("stderr", ""),
        )

    def cancel_execution(self, backend_ref: str, execution_id: str) -> None:
        try:
            self._request("POST", f"/instances/{backend_ref}/exec/{execution_id}/kill", 5, "cancel command on")
        except (DriverError, OperationTimeoutError) as e:
            logger.warning(f"Could not cancel execution {execution_id}: {e}")

    def capture(self, backend_ref: str, name: str, timeout: float) -> CaptureResult:
        data = self._request(
            "POST", "/snapshots", timeout, "snapshot",
            json={"instanceId": backend_ref, "name": name},
        ) or {}
        snapshot_id = data.get("id")
        if not snapshot_id:
            raise DriverError("microVM manager returned no snapshot id", driver=self.name, operation="snapshot")
        return CaptureResult(
            storage_locator=f"{SNAPSHOT_LOCATOR_PREFIX}{snapshot_id}",
            size_bytes=int(data.get("size", 0)),
        )

    def delete_capture(self, storage_locator: str, timeout: float) -> None:
        snapshot_id = self._snapshot_id(storage_locator)
        self._request("DELETE", f"/snapshots/{snapshot_id}", timeout, "delete snapshot")

    def _snapshot_id(self, storage_locator: str) -> str:
        if not storage_locator.startswith(SNAPSHOT_LOCATOR_PREFIX):
            raise DriverError(f"Unsupported snapshot locator: {storage_locator}",
                              driver=self.name, operation="restore")
        return storage_locator[len(SNAPSHOT_LOCATOR_PREFIX):]

    def logs(self, backend_ref: str, lines: int, timeout: float) -> List[str]:
        data = self._request(
            "GET", f"/instances/{backend_ref}/logs", timeout, "read logs for", params={"lines": lines}
        ) or {}
        return list(data.get("logs", []))

    def stats(self, backend_ref: str, timeout: float) -> Optional[Dict[str, float]]:
        data = self._request("GET", f"/instances/{backend_ref}/metrics", timeout, "collect stats for")
        if not data:
            return None
        keys = ("cpu_percent", "memory_mb", "disk_mb", "network_rx_bytes", "network_tx_bytes")
        return {key: float(data[key]) for key in keys if data.get(key) is not None}

    def health(self) -> Dict[str, Any]:
        start = time.monotonic()
        try:
            response = self.session.get(f"{self.base_url}/health", timeout=5)
            healthy = response.ok
        except requests.RequestException as e:
            logger.warning(f"Firecracker health check failed: {e}")
            healthy = False
        return {
            "status": "healthy" if healthy else "unhealthy",
            "response_time_ms": round((time.monotonic() - start) * 1000, 1),
        }
