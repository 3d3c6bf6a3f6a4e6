"""
Tests for the command-line entry point
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from contra_exec import cli
from contra_exec.config import WorkerConfig
from contra_exec.execution.errors import RetrievalError
from contra_exec.execution.pipeline import JobOutcome, PipelineStage
from contra_exec.models import Collection

from conftest import make_tar


class TestFormatOutcome:

    def test_plain_tuple(self):
        outcome = JobOutcome(output=b"hi\n", artifact_path=Path("/w/out/output.tar.gz"))
        assert cli.format_outcome(outcome) == "('hi\\n', '/w/out/output.tar.gz', None)"

    def test_json(self):
        outcome = JobOutcome(failed_stage=PipelineStage.RETRIEVING, error=RetrievalError("gone"))
        data = json.loads(cli.format_outcome(outcome, as_json=True))
        assert data["failed_stage"] == "retrieving"
        assert data["error"] == "gone"
        assert data["artifact_path"] is None


class TestMain:

    def test_no_arguments_runs_worker(self):
        with patch.object(cli, "run_worker", new=AsyncMock()) as run_worker, \
                patch.object(cli, "configure_logging"):
            cli.main([])
        run_worker.assert_awaited_once()

    def test_single_argument_rejected(self):
        with pytest.raises(SystemExit):
            cli.main(["only-data"])

    def test_one_shot_job(self, tmp_path, content_store, capsys):
        content_store.put("d", Collection.DATA, "data.tar.gz", make_tar({"in.txt": b"1"}))
        content_store.put("c", Collection.CONTROL, "job.sh", b"echo ok; echo x > new.txt\n")

        with patch.object(cli, "get_content_store", return_value=content_store), \
                patch.object(cli, "get_worker_config") as get_config:
            get_config.return_value = WorkerConfig(normalize_command=[])
            cli.main(["d", "c", "--json", "--workspace", str(tmp_path / "ws")])

        data = json.loads(capsys.readouterr().out)
        assert data["output"] == "ok\n"
        assert data["artifact_path"] == str(tmp_path / "ws" / "out" / "output.tar.gz")
        assert data["error"] is None
