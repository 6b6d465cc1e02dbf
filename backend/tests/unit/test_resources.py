# backend/tests/unit/test_resources.py
import pytest

from kraft.config import Settings
from kraft.exceptions import ValidationError
from kraft.services.resources import ResourceProfile, build_profile, parse_size_mb


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.mark.parametrize("value,expected", [
    (512, 512),
    ("512", 512),
    ("512M", 512),
    ("512MB", 512),
    ("512Mi", 512),
    ("2G", 2048),
    ("2gb", 2048),
    ("1GiB", 1024),
    ("0.5G", 512),
    (" 1 G ", 1024),
])
def test_parse_size(value, expected):
    assert parse_size_mb(value) == expected


@pytest.mark.parametrize("value", ["lots", "12T", "", "-1G", "1.5M", 0, -5, True])
def test_parse_size_rejects(value):
    with pytest.raises(ValidationError):
        parse_size_mb(value)


def test_build_profile_uses_platform_defaults(settings):
    profile = build_profile(settings)
    assert profile.image == "ubuntu:22.04"
    assert profile.memory_mb == 512
    assert profile.cpu_count == 1
    assert profile.disk_mb == 10240
    assert profile.environment == {}


def test_build_profile_explicit_values_win_over_base(settings):
    base = ResourceProfile(
        image="python:3.12", memory_mb=1024, cpu_count=2, disk_mb=4096,
        environment={"A": "1", "B": "2"}, metadata={"team": "core"},
    )
    profile = build_profile(settings, memory="2G", environment={"B": "3"}, base=base)
    assert profile.image == "python:3.12"
    assert profile.memory_mb == 2048
    assert profile.cpu_count == 2
    assert profile.disk_mb == 4096
    assert profile.environment == {"A": "1", "B": "3"}
    assert profile.metadata == {"team": "core"}


@pytest.mark.parametrize("overrides", [
    {"memory": "64M"},
    {"memory": "16G"},
    {"cpu_count": 0},
    {"cpu_count": 9},
    {"disk_size": "100G"},
    {"image": "   "},
    {"environment": {"PORT": 8080}},
])
def test_build_profile_bounds(settings, overrides):
    with pytest.raises(ValidationError):
        build_profile(settings, **overrides)


def test_metadata_limits(settings):
    with pytest.raises(ValidationError):
        build_profile(settings, metadata={f"k{i}": i for i in range(settings.max_metadata_keys + 1)})
    with pytest.raises(ValidationError):
        build_profile(settings, metadata={"blob": "x" * settings.max_metadata_bytes})
