from typing import Dict, List, Optional, Type
from dataclasses import dataclass
from enum import Enum

from cropclaim.temporal.core.constants import AI_TASK_QUEUE


class WorkflowType(str, Enum):
    """Workflow categories."""
    AI_TASKS = "ai_tasks"
    MAINTENANCE = "maintenance"


@dataclass
class WorkflowMetadata:
    """Metadata for workflow discovery."""
    workflow_class: Type
    name: str
    category: WorkflowType
    task_queue: str
    cron_schedule: Optional[str] = None  # Started once by the worker when set


class WorkflowRegistry:
    """Central registry for all workflows."""

    _workflows: Dict[str, WorkflowMetadata] = {}

    @classmethod
    def register(
        cls,
        category: WorkflowType,
        task_queue: str = AI_TASK_QUEUE,
        cron_schedule: Optional[str] = None,
    ):
        """Decorator to register a workflow."""
        def decorator(workflow_class):
            metadata = WorkflowMetadata(
                workflow_class=workflow_class,
                name=workflow_class.__name__,
                category=category,
                task_queue=task_queue,
                cron_schedule=cron_schedule,
            )
            cls._workflows[workflow_class.__name__] = metadata
            return workflow_class
        return decorator

    @classmethod
    def get_all_workflows(cls) -> Dict[str, WorkflowMetadata]:
        """Get all registered workflows."""
        return cls._workflows

    @classmethod
    def get_by_category(cls, category: WorkflowType) -> List[WorkflowMetadata]:
        """Get workflows by category."""
        return [w for w in cls._workflows.values() if w.category == category]

    @classmethod
    def get_scheduled(cls) -> List[WorkflowMetadata]:
        """Get workflows that run on a cron schedule."""
        return [w for w in cls._workflows.values() if w.cron_schedule]
