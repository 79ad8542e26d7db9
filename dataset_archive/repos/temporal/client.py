"""
Client-side Temporal implementations of WorkflowEngineRepository and
FinalizeDispatcher.

These run outside workflows (in the CLI or an API process) and start
workflow executions through a Temporal client.
"""

import logging
from typing import Optional

from temporalio.client import Client
from temporalio.common import WorkflowIDReusePolicy

from dataset_archive.domain import (
    ArchiveRequest,
    ArchiveWorkflowInput,
    FinalizeWorkflowInput,
    TriggerType,
    WorkflowContext,
    WorkflowDefinition,
)
from dataset_archive.repositories import (
    FinalizeDispatcher,
    SettingsRepository,
    WorkflowEngineRepository,
)
from dataset_archive.workflows import (
    TASK_QUEUE,
    ArchiveDatasetWorkflow,
    FinalizeDatasetArchiveWorkflow,
    archive_workflow_id,
    finalize_workflow_id,
)

logger = logging.getLogger(__name__)


class TemporalWorkflowEngineRepository(WorkflowEngineRepository):
    """
    Default workflows come from the archive settings; starting one starts
    an ArchiveDatasetWorkflow for the dataset.

    ``start`` returns once the run is accepted. The run installs the
    dataset's Workflow lock as its first activity, with the returned run
    id as invocation id.
    """

    def __init__(
        self,
        client: Client,
        settings_repo: SettingsRepository,
        task_queue: str = TASK_QUEUE,
    ) -> None:
        self.client = client
        self.settings_repo = settings_repo
        self.task_queue = task_queue

    async def get_default_workflow(
        self, trigger: TriggerType
    ) -> Optional[WorkflowDefinition]:
        settings = await self.settings_repo.get_settings()
        return settings.default_workflow(trigger)

    async def start(
        self,
        workflow: WorkflowDefinition,
        context: WorkflowContext,
        blocking: bool,
    ) -> str:
        workflow_id = archive_workflow_id(context.dataset_id)
        logger.debug(
            "Starting pre-archive workflow",
            extra={
                "workflow_id": workflow_id,
                "definition": workflow.workflow_id,
                "dataset_id": context.dataset_id,
                "blocking": blocking,
            },
        )
        try:
            handle = await self.client.start_workflow(
                ArchiveDatasetWorkflow.run,
                ArchiveWorkflowInput(workflow=workflow, context=context),
                id=workflow_id,
                task_queue=self.task_queue,
                id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
            )
        except Exception as e:
            logger.error(
                "Failed to start pre-archive workflow",
                extra={
                    "workflow_id": workflow_id,
                    "dataset_id": context.dataset_id,
                    "error": str(e),
                },
            )
            raise

        invocation_id = handle.result_run_id or handle.run_id or workflow_id
        logger.info(
            "Pre-archive workflow started",
            extra={
                "workflow_id": workflow_id,
                "invocation_id": invocation_id,
                "dataset_id": context.dataset_id,
            },
        )
        return invocation_id


class TemporalFinalizeDispatcher(FinalizeDispatcher):
    """
    Starts a FinalizeDatasetArchiveWorkflow keyed by dataset id, so at most
    one finalize runs per dataset at a time.
    """

    def __init__(self, client: Client, task_queue: str = TASK_QUEUE) -> None:
        self.client = client
        self.task_queue = task_queue

    async def dispatch_finalize(
        self, dataset_id: str, request: ArchiveRequest
    ) -> None:
        workflow_id = finalize_workflow_id(dataset_id)
        logger.debug(
            "Dispatching finalize workflow",
            extra={"workflow_id": workflow_id, "dataset_id": dataset_id},
        )
        try:
            await self.client.start_workflow(
                FinalizeDatasetArchiveWorkflow.run,
                FinalizeWorkflowInput(dataset_id=dataset_id, request=request),
                id=workflow_id,
                task_queue=self.task_queue,
                id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
            )
        except Exception as e:
            logger.error(
                "Failed to dispatch finalize workflow",
                extra={
                    "workflow_id": workflow_id,
                    "dataset_id": dataset_id,
                    "error": str(e),
                },
            )
            raise
        logger.info(
            "Finalize workflow dispatched",
            extra={"workflow_id": workflow_id, "dataset_id": dataset_id},
        )
