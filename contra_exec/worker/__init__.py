"""
Queue-consuming execution worker
"""

from contra_exec.worker.agent import ExecWorker, run_worker

__all__ = ["ExecWorker", "run_worker"]
