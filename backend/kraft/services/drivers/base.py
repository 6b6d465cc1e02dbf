# backend/kraft/services/drivers/base.py
"""
Driver interface implemented by every backend (microVM manager, container
runtime). Each call takes an explicit timeout in seconds; callers additionally
wrap calls in ``run_bounded`` so a wedged backend cannot block a request.

Drivers raise DriverNotFoundError when the backend reports the target
missing, DriverError for any other failure, and OperationTimeoutError when
the backend itself times out.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from kraft.models.instance import InstanceKind


@dataclass
class BootRequest:
    instance_id: UUID
    kind: InstanceKind
    image: str
    memory_mb: int
    cpu_count: int
    disk_mb: int
    vnc_enabled: bool = False
    environment: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Storage locator of a snapshot to boot from
    restore_from: Optional[str] = None


@dataclass
class BootResult:
    backend_ref: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


@dataclass
class CaptureResult:
    storage_locator: str
    size_bytes: int = 0


class InstanceDriver(ABC):
    name = "driver"

    @abstractmethod
    def boot(self, request: BootRequest, timeout: float) -> BootResult:
        ...

    @abstractmethod
    def start(self, backend_ref: str, timeout: float) -> None:
        ...

    @abstractmethod
    def stop(self, backend_ref: str, timeout: float) -> None:
        ...

    @abstractmethod
    def restart(self, backend_ref: str, timeout: float) -> None:
        ...

    @abstractmethod
    def execute(self, backend_ref: str, command: str, timeout: float, execution_id: str) -> ExecResult:
        ...

    @abstractmethod
    def cancel_execution(self, backend_ref: str, execution_id: str) -> None:
        """Best-effort kill of a running command."""

    @abstractmethod
    def capture(self, backend_ref: str, name: str, timeout: float) -> CaptureResult:
        ...

    @abstractmethod
    def delete_capture(self, storage_locator: str, timeout: float) -> None:
        ...

    @abstractmethod
    def teardown(self, backend_ref: str, timeout: float) -> None:
        ...

    @abstractmethod
    def logs(self, backend_ref: str, lines: int, timeout: float) -> List[str]:
        ...

    @abstractmethod
    def stats(self, backend_ref: str, timeout: float) -> Optional[Dict[str, float]]:
        """
        Current resource usage, or None when the instance is not running.

        Keys: cpu_percent, memory_mb, disk_mb, network_rx_bytes, network_tx_bytes
        (any may be absent).
        """

    @abstractmethod
    def health(self) -> Dict[str, Any]:
        ...
