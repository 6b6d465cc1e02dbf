# backend/kraft/services/executor.py
"""Runs shell commands inside running instances with a hard deadline."""
import logging
import time
from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from kraft.config import Settings, get_settings
from kraft.exceptions import (
    DriverError, DriverNotFoundError, InvalidStateError, NotFoundError,
    OperationTimeoutError, ValidationError,
)
from kraft.models.event_log import EventType
from kraft.models.instance import InstanceStatus
from kraft.services.deadline import run_bounded
from kraft.services.drivers import DriverSet
from kraft.services.event_service import EventService
from kraft.services.registry import InstanceRepository

logger = logging.getLogger(__name__)


@dataclass
class CommandOutcome:
    instance_id: UUID
    execution_id: str
    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int


class CommandExecutor:
    def __init__(self, db: Session, drivers: DriverSet, settings: Optional[Settings] = None):
        self.db = db
        self.drivers = drivers
        self.settings = settings or get_settings()
        self.repo = InstanceRepository(db)
        self.events = EventService(db)

    def validate(self, command: str, timeout_ms: int) -> None:
        if not command:
            raise ValidationError("command must not be empty")
        low, high = self.settings.exec_min_timeout_ms, self.settings.exec_max_timeout_ms
        if not low <= timeout_ms <= high:
            raise ValidationError(f"timeout must be between {low} and {high} ms")

    def execute(self, instance_id: UUID, command: str, timeout_ms: Optional[int] = None) -> CommandOutcome:
        """
        Run ``command`` and return its exit code and output. A non-zero exit
        code is a normal result. Exceeding the deadline raises
        OperationTimeoutError after asking the driver to kill the command.
        """
        if timeout_ms is None:
            timeout_ms = self.settings.exec_default_timeout_ms
        self.validate(command, timeout_ms)

        instance = self.repo.get(instance_id)
        if instance is None:
            raise NotFoundError("Instance")
        if instance.status != InstanceStatus.RUNNING or not instance.backend_ref:
            raise InvalidStateError(f"Cannot execute commands on instance in {instance.status.value} state")
        backend_ref = instance.backend_ref

        driver = self.drivers.for_kind(instance.kind)
        execution_id = uuid4().hex
        timeout = timeout_ms / 1000.0
        started = time.monotonic()

        try:
            result = run_bounded(
                lambda: driver.execute(backend_ref, command, timeout, execution_id),
                timeout,
                "exec",
                on_timeout=lambda: driver.cancel_execution(backend_ref, execution_id),
            )
        except OperationTimeoutError:
            self.events.log_event(instance_id, EventType.COMMAND_TIMED_OUT,
                                  f"Command timed out after {timeout_ms}ms",
                                  {"command": command, "execution_id": execution_id})
            raise
        except DriverNotFoundError:
            raise NotFoundError("Instance")
        except DriverError as e:
            logger.error(f"Command on {instance_id} failed: {e.message}")
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Executed command on instance {instance_id}: exit {result.exit_code} in {duration_ms}ms")
        self.events.log_event(instance_id, EventType.COMMAND_EXECUTED,
                              f"Command exited with {result.exit_code}",
                              {"command": command, "execution_id": execution_id, "duration_ms": duration_ms})

        return CommandOutcome(
            instance_id=instance_id,
            execution_id=execution_id,
            command=command,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=duration_ms,
        )
