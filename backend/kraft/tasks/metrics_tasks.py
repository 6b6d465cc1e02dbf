# kraft/tasks/metrics_tasks.py
"""Periodic resource sampling of running instances."""
import dramatiq
import logging
from uuid import UUID

from kraft.config import get_settings
from kraft.database import get_session_local
from kraft.exceptions import ControlPlaneError, NotFoundError
from kraft.models.instance import Instance, InstanceStatus
from kraft.models.metric import MetricType
from kraft.services.deadline import run_bounded
from kraft.services.drivers import get_drivers
from kraft.services.metrics_service import MetricsService

logger = logging.getLogger(__name__)

# Driver stats key -> metric type
STAT_METRICS = {
    "cpu_percent": MetricType.CPU_USAGE,
    "memory_mb": MetricType.MEMORY_USAGE,
    "disk_mb": MetricType.DISK_USAGE,
    "network_rx_bytes": MetricType.NETWORK_IN,
    "network_tx_bytes": MetricType.NETWORK_OUT,
}


@dramatiq.actor(max_retries=3, min_backoff=1000)
def collect_instance_metrics(instance_id: str) -> int:
    """Sample one running instance and append its metrics. Returns samples written."""
    db = get_session_local()()
    try:
        instance = db.get(Instance, UUID(instance_id))
        if instance is None:
            logger.warning(f"Instance {instance_id} not found, skipping metrics")
            return 0
        if instance.status != InstanceStatus.RUNNING or not instance.backend_ref:
            logger.debug(f"Instance {instance_id} is {instance.status.value}, skipping metrics")
            return 0

        backend_ref = instance.backend_ref
        timeout = get_settings().driver_timeout_seconds
        driver = get_drivers().for_kind(instance.kind)
        try:
            stats = run_bounded(lambda: driver.stats(backend_ref, timeout), timeout, "collect stats for")
        except ControlPlaneError as e:
            logger.error(f"Failed to collect stats for {instance_id}: {e.message}")
            return 0
        if not stats:
            return 0

        service = MetricsService(db)
        written = 0
        for key, metric_type in STAT_METRICS.items():
            if key not in stats:
                continue
            try:
                service.record(instance.id, metric_type, stats[key])
            except NotFoundError:
                # Instance deleted mid-collection
                logger.info(f"Instance {instance_id} deleted during collection after {written} samples")
                break
            written += 1
        logger.info(f"Recorded {written} samples for instance {instance_id}")
        return written
    finally:
        db.close()


@dramatiq.actor(max_retries=0)
def collect_running_instances_metrics() -> int:
    """Fan out one collection message per running instance."""
    db = get_session_local()()
    try:
        ids = [
            row[0] for row in db.query(Instance.id).filter(
                Instance.status == InstanceStatus.RUNNING
            ).all()
        ]
    finally:
        db.close()

    for instance_id in ids:
        collect_instance_metrics.send(str(instance_id))
    return len(ids)
