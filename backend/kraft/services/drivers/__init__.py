# backend/kraft/services/drivers/__init__.py
import logging
import threading
from typing import Any, Callable, Dict, Optional

from kraft.config import get_settings
from kraft.exceptions import DriverError
from kraft.models.instance import InstanceKind
from kraft.services.drivers.base import (
    InstanceDriver, BootRequest, BootResult, ExecResult, CaptureResult,
)

logger = logging.getLogger(__name__)


def _docker_factory() -> InstanceDriver:
    from kraft.services.drivers.docker_driver import DockerDriver
    return DockerDriver()


def _firecracker_factory() -> InstanceDriver:
    from kraft.services.drivers.firecracker_driver import FirecrackerDriver
    settings = get_settings()
    return FirecrackerDriver(
        base_url=settings.firecracker_api_url,
        api_token=settings.firecracker_api_token,
        admin_key=settings.firecracker_admin_key,
    )


DEFAULT_FACTORIES: Dict[InstanceKind, Callable[[], InstanceDriver]] = {
    InstanceKind.CONTAINER: _docker_factory,
    InstanceKind.MICROVM: _firecracker_factory,
}


class DriverSet:
    """Maps an instance kind to its driver, constructing drivers on first use."""

    def __init__(
        self,
        drivers: Optional[Dict[InstanceKind, InstanceDriver]] = None,
        factories: Optional[Dict[InstanceKind, Callable[[], InstanceDriver]]] = None,
    ):
        self._drivers: Dict[InstanceKind, InstanceDriver] = dict(drivers or {})
        self._factories = factories if factories is not None else ({} if drivers else DEFAULT_FACTORIES)
        self._lock = threading.Lock()

    def for_kind(self, kind: InstanceKind) -> InstanceDriver:
        with self._lock:
            driver = self._drivers.get(kind)
            if driver is not None:
                return driver
            factory = self._factories.get(kind)
            if factory is None:
                raise DriverError(f"No driver registered for {kind.value} instances")
            try:
                driver = factory()
            except DriverError:
                raise
            except Exception as e:
                logger.error(f"Failed to initialise {kind.value} driver: {e}")
                raise DriverError(str(e))
            self._drivers[kind] = driver
            return driver

    def health(self) -> Dict[str, Dict[str, Any]]:
        kinds = set(self._drivers) | set(self._factories)
        report = {}
        for kind in sorted(kinds, key=lambda k: k.value):
            try:
                report[kind.value] = self.for_kind(kind).health()
            except DriverError as e:
                logger.warning(f"{kind.value} driver unavailable: {e.message}")
                report[kind.value] = {"status": "unavailable"}
        return report


_driver_set: Optional[DriverSet] = None


def get_drivers() -> DriverSet:
    """Get the process-wide driver set."""
    global _driver_set
    if _driver_set is None:
        _driver_set = DriverSet()
    return _driver_set


__all__ = [
    "InstanceDriver", "BootRequest", "BootResult", "ExecResult", "CaptureResult",
    "DriverSet", "get_drivers",
]
