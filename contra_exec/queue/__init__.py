"""
Execution queue integration
"""

from contra_exec.queue.consumer import Delivery, QueueConsumer

__all__ = ["Delivery", "QueueConsumer"]
