# backend/kraft/services/resources.py
"""
Resource profile parsing and validation.

Sizes arrive either as integers (megabytes) or strings such as ``"512M"``,
``"2GB"`` or ``"1Gi"``. Every size is normalized to whole megabytes, with
1G == 1024M.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from kraft.config import Settings
from kraft.exceptions import ValidationError

SizeValue = Union[int, str]

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$")

_UNIT_FACTORS = {
    "": 1,
    "m": 1, "mb": 1, "mi": 1, "mib": 1,
    "g": 1024, "gb": 1024, "gi": 1024, "gib": 1024,
}


def parse_size_mb(value: SizeValue, field_name: str = "size") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    if isinstance(value, int):
        if value <= 0:
            raise ValidationError(f"{field_name} must be positive")
        return value

    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValidationError(f"Invalid {field_name}: {value!r}")

    number, unit = match.groups()
    factor = _UNIT_FACTORS.get(unit.lower())
    if factor is None:
        raise ValidationError(f"Unknown unit in {field_name}: {unit!r}")

    megabytes = float(number) * factor
    if megabytes <= 0:
        raise ValidationError(f"{field_name} must be positive")
    if not megabytes.is_integer():
        raise ValidationError(f"{field_name} must be a whole number of megabytes")
    return int(megabytes)


@dataclass
class ResourceProfile:
    image: str
    memory_mb: int
    cpu_count: int
    disk_mb: int
    environment: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


def build_profile(
    settings: Settings,
    image: Optional[str] = None,
    memory: Optional[SizeValue] = None,
    cpu_count: Optional[int] = None,
    disk_size: Optional[SizeValue] = None,
    environment: Optional[Dict[str, str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    base: Optional[ResourceProfile] = None,
) -> ResourceProfile:
    """
    Resolve a profile from explicit values, falling back to ``base`` (a template
    or snapshot) and then to the configured platform defaults.
    """
    if base is not None:
        image = image or base.image
        memory_mb = parse_size_mb(memory, "memory") if memory is not None else base.memory_mb
        cpu_count = cpu_count if cpu_count is not None else base.cpu_count
        disk_mb = parse_size_mb(disk_size, "disk_size") if disk_size is not None else base.disk_mb
        env = {**base.environment, **(environment or {})}
        meta = {**base.metadata, **(metadata or {})}
    else:
        image = image or settings.default_image
        memory_mb = parse_size_mb(memory if memory is not None else settings.default_memory, "memory")
        cpu_count = cpu_count if cpu_count is not None else settings.default_cpu_count
        disk_mb = parse_size_mb(
            disk_size if disk_size is not None else settings.default_disk_size, "disk_size"
        )
        env = dict(environment or {})
        meta = dict(metadata or {})

    profile = ResourceProfile(
        image=image.strip(),
        memory_mb=memory_mb,
        cpu_count=cpu_count,
        disk_mb=disk_mb,
        environment=env,
        metadata=meta,
    )
    validate_profile(profile, settings)
    return profile


def validate_profile(profile: ResourceProfile, settings: Settings) -> None:
    if not profile.image:
        raise ValidationError("image must not be empty")
    if not settings.min_memory_mb <= profile.memory_mb <= settings.max_memory_mb:
        raise ValidationError(
            f"memory must be between {settings.min_memory_mb}M and {settings.max_memory_mb}M"
        )
    if isinstance(profile.cpu_count, bool) or not 1 <= profile.cpu_count <= settings.max_cpu_count:
        raise ValidationError(f"cpu_count must be between 1 and {settings.max_cpu_count}")
    if not settings.min_disk_mb <= profile.disk_mb <= settings.max_disk_mb:
        raise ValidationError(
            f"disk_size must be between {settings.min_disk_mb}M and {settings.max_disk_mb}M"
        )
    validate_mappings(profile.environment, profile.metadata, settings)


def validate_mappings(environment: Dict[str, Any], metadata: Dict[str, Any], settings: Settings) -> None:
    for key, value in environment.items():
        if not key or not isinstance(value, str):
            raise ValidationError("environment must map non-empty names to string values")

    if len(metadata) > settings.max_metadata_keys:
        raise ValidationError(f"metadata may hold at most {settings.max_metadata_keys} keys")
    try:
        encoded = json.dumps(metadata)
    except (TypeError, ValueError):
        raise ValidationError("metadata must be JSON serializable")
    if len(encoded.encode("utf-8")) > settings.max_metadata_bytes:
        raise ValidationError(f"metadata exceeds {settings.max_metadata_bytes} bytes")
