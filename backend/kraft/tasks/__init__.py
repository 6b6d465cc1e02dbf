# kraft/tasks/__init__.py
"""Dramatiq task definitions for background work."""
import dramatiq
from dramatiq.brokers.redis import RedisBroker
from kraft.config import get_settings

settings = get_settings()

# Configure Redis broker
redis_broker = RedisBroker(url=settings.redis_url)
dramatiq.set_broker(redis_broker)

from .metrics_tasks import collect_instance_metrics, collect_running_instances_metrics

__all__ = [
    'collect_instance_metrics',
    'collect_running_instances_metrics',
]
