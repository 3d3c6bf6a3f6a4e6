"""
Tests for configuration management
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from contra_exec.config import WorkerConfig


class TestConfigurationLoading:
    """Test configuration loading and validation"""

    def test_worker_config_defaults(self):
        """Test worker config loads with defaults"""
        config = WorkerConfig()

        assert config.exec_path == Path("/home/contra/exec_dir")
        assert config.execution_queue == "execution_queue"
        assert config.upstash_redis_rest_token == "guest"
        assert config.script_shell == "/bin/bash"
        assert config.normalize_command == ["dos2unix"]
        assert config.collect_output is True
        assert config.output_archive_name == "output.tar.gz"

    def test_config_environment_variables(self, monkeypatch):
        """Test that config loads from environment variables"""
        monkeypatch.setenv("EXEC_PATH", "/tmp/other_exec")
        monkeypatch.setenv("CLIENT_ID", "worker-7")
        monkeypatch.setenv("SCRIPT_TIMEOUT", "60")
        monkeypatch.setenv("COLLECT_OUTPUT", "false")
        monkeypatch.setenv("NORMALIZE_COMMAND", '["sed", "-i", "s/\\\\r$//"]')
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        config = WorkerConfig()

        assert config.exec_path == Path("/tmp/other_exec")
        assert config.consumer_id == "worker-7"
        assert config.script_timeout == 60
        assert config.collect_output is False
        assert config.normalize_command[0] == "sed"
        assert config.log_level == "DEBUG"

    def test_consumer_id_derived_from_host(self):
        config = WorkerConfig(client_id="")
        assert config.consumer_id.startswith("exec-")

    @pytest.mark.parametrize("name", ["output.tar", "output.tar.gz", "result.gzip"])
    def test_packable_archive_names(self, name):
        assert WorkerConfig(output_archive_name=name).output_archive_name == name

    @pytest.mark.parametrize("name", ["output.7z", "output.zip", "output"])
    def test_unpackable_archive_name_rejected(self, name):
        with pytest.raises(ValidationError):
            WorkerConfig(output_archive_name=name)

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValidationError):
            WorkerConfig(script_timeout=-1)
