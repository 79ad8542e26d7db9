"""
Memory implementations of the workflow-engine side of the archive:
WorkflowEngineRepository, FinalizeDispatcher, MetadataValidatorRepository
and SettingsRepository.
"""

import logging
from typing import Dict, List, Optional, Tuple

from dataset_archive.config import ArchiveSettings
from dataset_archive.domain import (
    ArchiveRequest,
    Dataset,
    TriggerType,
    WorkflowContext,
    WorkflowDefinition,
)
from dataset_archive.repositories import (
    FinalizeDispatcher,
    MetadataValidatorRepository,
    SettingsRepository,
    WorkflowEngineRepository,
)

logger = logging.getLogger(__name__)


class MemoryWorkflowEngineRepository(WorkflowEngineRepository):
    """Records workflow starts instead of running them."""

    def __init__(
        self,
        default_workflows: Optional[
            Dict[TriggerType, WorkflowDefinition]
        ] = None,
    ) -> None:
        self.default_workflows = dict(default_workflows or {})
        self.started: List[
            Tuple[WorkflowDefinition, WorkflowContext, bool]
        ] = []

    async def get_default_workflow(
        self, trigger: TriggerType
    ) -> Optional[WorkflowDefinition]:
        return self.default_workflows.get(trigger)

    async def start(
        self,
        workflow: WorkflowDefinition,
        context: WorkflowContext,
        blocking: bool,
    ) -> str:
        self.started.append((workflow, context, blocking))
        invocation_id = f"memory-{workflow.workflow_id}-{len(self.started)}"
        logger.info(
            "MemoryWorkflowEngineRepository: Workflow started",
            extra={
                "workflow_id": workflow.workflow_id,
                "dataset_id": context.dataset_id,
                "invocation_id": invocation_id,
            },
        )
        return invocation_id


class MemoryFinalizeDispatcher(FinalizeDispatcher):
    """Records finalize dispatches keyed by dataset id."""

    def __init__(self) -> None:
        self.dispatched: List[Tuple[str, ArchiveRequest]] = []

    async def dispatch_finalize(
        self, dataset_id: str, request: ArchiveRequest
    ) -> None:
        self.dispatched.append((dataset_id, request))


class MemoryMetadataValidatorRepository(MetadataValidatorRepository):
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.calls: List[Tuple[str, str]] = []

    async def validate(self, dataset: Dataset, executable: str) -> bool:
        self.calls.append((dataset.dataset_id, executable))
        return self.accept


class MemorySettingsRepository(SettingsRepository):
    def __init__(self, settings: Optional[ArchiveSettings] = None) -> None:
        self.settings = settings or ArchiveSettings()

    async def get_settings(self) -> ArchiveSettings:
        return self.settings
