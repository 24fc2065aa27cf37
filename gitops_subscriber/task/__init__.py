"""Task tracking module for gitops-subscriber.

Subscriber items use the task service to run their polling loops in the
background.
"""

from .context import get_task_service
from .service import TaskService

__all__ = ["get_task_service", "TaskService"]
