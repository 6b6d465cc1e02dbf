# backend/kraft/config.py
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KRAFT_", env_file=".env", extra="ignore")

    app_name: str = "Kraft Control Plane"
    database_url: str = "sqlite:///./kraft.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Bearer tokens are issued by the session provider and signed with this secret
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # microVM manager
    firecracker_api_url: str = ""
    firecracker_api_token: str = ""
    firecracker_admin_key: str = ""

    # Provisioning defaults
    default_image: str = "ubuntu:22.04"
    default_memory: str = "512M"
    default_cpu_count: int = 1
    default_disk_size: str = "10GB"

    # Platform limits
    min_memory_mb: int = 128
    max_memory_mb: int = 8192
    max_cpu_count: int = 8
    min_disk_mb: int = 1024
    max_disk_mb: int = 51200
    max_instances_per_user: int = 5
    max_metadata_keys: int = 64
    max_metadata_bytes: int = 16384

    # Driver round trips
    driver_timeout_seconds: float = 120.0
    restart_timeout_seconds: float = Field(300.0, le=300.0)
    driver_pool_size: int = 16
    instance_lock_timeout_seconds: float = 30.0

    exec_default_timeout_ms: int = 30000
    exec_min_timeout_ms: int = 1000
    exec_max_timeout_ms: int = Field(300000, le=300000)

    metrics_default_limit: int = 100
    metrics_max_limit: int = 1000
    logs_default_lines: int = 100
    logs_max_lines: int = 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()
