"""
contra-exec CLI
No arguments: consume the execution queue. Two arguments: run one job locally.
"""

import argparse
import asyncio
import json as json_lib
import sys
from pathlib import Path
from typing import Optional, Sequence

import structlog
from rich.console import Console

from contra_exec.config import get_worker_config
from contra_exec.execution.errors import ConnectivityError
from contra_exec.execution.pipeline import JobOutcome, JobPipeline
from contra_exec.execution.workspace import Workspace
from contra_exec.log import configure_logging
from contra_exec.storage import ContentStore, get_content_store
from contra_exec.worker import run_worker

logger = structlog.get_logger()
console = Console()


def format_outcome(outcome: JobOutcome, as_json: bool = False) -> str:
    """Render a one-shot job result"""
    output, artifact, error = outcome.as_tuple()
    text = output.decode("utf-8", errors="replace")
    if as_json:
        return json_lib.dumps({
            "output": text,
            "artifact_path": str(artifact) if artifact else None,
            "error": str(error) if error else None,
            "failed_stage": outcome.failed_stage.value if outcome.failed_stage else None,
            "duration": round(outcome.duration, 3),
        }, indent=2)
    return f"({text!r}, {str(artifact) if artifact else ''!r}, {str(error) if error else None})"


async def run_once(
    data_fid: str,
    control_fid: str,
    content_store: ContentStore,
    workspace: Optional[Workspace] = None
) -> JobOutcome:
    """Run a single job synchronously, bypassing the queue"""
    pipeline = JobPipeline.from_config(get_worker_config(), content_store, workspace)
    return await pipeline.execute(data_fid, control_fid)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contra-exec",
        description="Job execution worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  contra-exec                          consume the execution queue
  contra-exec DATA_FID CONTROL_FID     run one job and print the result
  contra-exec DATA_FID CONTROL_FID --json --workspace /tmp/exec
        """
    )
    parser.add_argument("data_fid", nargs="?", help="Content store id of the data archive")
    parser.add_argument("control_fid", nargs="?", help="Content store id of the control script")
    parser.add_argument("--workspace", "-w", type=Path, help="Workspace root (default: EXEC_PATH)")
    parser.add_argument("--json", "-j", action="store_true", help="Print the one-shot result as JSON")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    return parser


def main(argv: Optional[Sequence[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if (args.data_fid is None) != (args.control_fid is None):
        parser.error("DATA_FID and CONTROL_FID must be given together")

    config = get_worker_config()
    configure_logging(args.log_level or config.log_level, config.log_format)
    if args.workspace:
        config.exec_path = args.workspace

    if args.data_fid is None:
        asyncio.run(run_worker(config))
        return

    try:
        outcome = asyncio.run(run_once(
            args.data_fid,
            args.control_fid,
            get_content_store(),
            Workspace(config.exec_path)
        ))
    except ConnectivityError as e:
        console.print(f"[red]Connectivity error: {e}[/red]")
        sys.exit(1)

    if args.json:
        print(format_outcome(outcome, as_json=True))
    else:
        console.print(format_outcome(outcome), markup=False, highlight=False)
    if not outcome.succeeded:
        sys.exit(2)


if __name__ == "__main__":
    main()
