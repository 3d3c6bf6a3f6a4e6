"""
contra-exec Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

import os
import socket
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKABLE_EXTENSIONS = (".tar", ".gz", ".gzip")


class WorkerConfig(BaseSettings):
    """Configuration for the execution worker"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Workspace
    exec_path: Path = Field(default=Path("/home/contra/exec_dir"), description="Workspace root")

    # Queue Connection
    client_id: str = Field(default="", description="Queue consumer identity")
    execution_queue: str = Field(default="execution_queue")
    upstash_redis_rest_url: str = Field(default="http://localhost:8079", description="Queue REST endpoint")
    upstash_redis_rest_token: str = Field(default="guest", description="Queue REST token")
    poll_interval: float = Field(default=1.0, description="Seconds between empty queue polls")

    # Content / Status Store
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_key: str = Field(default="")

    # Execution
    script_shell: str = Field(default="/bin/bash")
    script_timeout: int = Field(default=3600, description="Max script duration in seconds, 0 disables")
    tool_timeout: int = Field(default=600, description="Max unpack/pack duration in seconds, 0 disables")
    normalize_command: list[str] = Field(
        default=["dos2unix"],
        description="Line ending normalizer applied to the control script"
    )

    # Output
    collect_output: bool = Field(default=True, description="Snapshot, diff and archive script output")
    output_archive_name: str = Field(default="output.tar.gz")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    @field_validator("output_archive_name")
    @classmethod
    def validate_archive_name(cls, v):
        if not v.endswith(PACKABLE_EXTENSIONS):
            raise ValueError(f"output archive must end with one of {PACKABLE_EXTENSIONS}")
        return v

    @field_validator("script_timeout", "tool_timeout")
    @classmethod
    def validate_timeout(cls, v):
        if v < 0:
            raise ValueError("timeout must be non-negative")
        return v

    @property
    def consumer_id(self) -> str:
        """Consumer identity, derived from the host when unset"""
        return self.client_id or f"exec-{socket.gethostname()}-{os.getpid()}"


# Singleton instance
_worker_config: WorkerConfig | None = None


def get_worker_config() -> WorkerConfig:
    """Get or create worker configuration singleton"""
    global _worker_config
    if _worker_config is None:
        _worker_config = WorkerConfig()
    return _worker_config
