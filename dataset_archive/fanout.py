"""
Post-commit fan-out of a finalized publication.

Once the finalize phase has committed, the repository tells the people
who care and refreshes the search index. Every action here is
best-effort: a failure is logged, recorded in the on-success failure log
where an operator can act on it, and never undoes the publication.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .domain import (
    FanOutReport,
    FinalizeOutcome,
    NotificationType,
    Permission,
    RoleAssignment,
    UserNotification,
    utc_now,
)
from .repositories import (
    NotificationRepository,
    OnSuccessFailureLogRepository,
    RoleAssignmentRepository,
    SearchIndexRepository,
)
from .validation import ensure_repository_protocol

logger = logging.getLogger(__name__)

PUBLISH_NOTIFY_PERMISSIONS = (
    Permission.VIEW_UNPUBLISHED_DATASET,
    Permission.DOWNLOAD_FILE,
)

REINDEX_HINT = (
    "Post-publication indexing failed. You can kick off a re-index of this "
    "dataverse with: \r\n curl "
    "http://localhost:8080/api/admin/index/dataverses/{dataverse_id}"
)


class PostArchiveFanOut:
    """Notifications and re-indexing after a successful finalize."""

    def __init__(
        self,
        role_repo: RoleAssignmentRepository,
        notification_repo: NotificationRepository,
        index_repo: SearchIndexRepository,
        failure_log_repo: OnSuccessFailureLogRepository,
        command: str,
    ) -> None:
        self.role_repo = ensure_repository_protocol(
            role_repo, RoleAssignmentRepository
        )
        self.notification_repo = ensure_repository_protocol(
            notification_repo, NotificationRepository
        )
        self.index_repo = ensure_repository_protocol(
            index_repo, SearchIndexRepository
        )
        self.failure_log_repo = ensure_repository_protocol(
            failure_log_repo, OnSuccessFailureLogRepository
        )
        self.command = command

    async def run(
        self, outcome: FinalizeOutcome, timestamp: Optional[datetime] = None
    ) -> FanOutReport:
        timestamp = timestamp or utc_now()
        dataset = outcome.dataset
        report = FanOutReport()

        try:
            recipients = await self._recipients(
                await self.role_repo.role_assignments(dataset.dataset_id),
                PUBLISH_NOTIFY_PERMISSIONS,
            )
        except Exception as e:
            await self._notification_failure(
                "dataset published messages", dataset.dataset_id, e, report
            )
            recipients = []
        report.notified_user_ids = await self._send_all(
            recipients,
            NotificationType.PUBLISHEDDS,
            dataset.latest_version.version_id,
            dataset.dataset_id,
            timestamp,
            report,
        )

        # One GRANTFILEACCESS per user, however many new files they can
        # download.
        file_access_recipients: List[str] = []
        for file_id in outcome.newly_published_file_ids:
            try:
                users = await self._recipients(
                    await self.role_repo.direct_role_assignments(file_id),
                    (Permission.DOWNLOAD_FILE,),
                )
            except Exception as e:
                await self._notification_failure(
                    f"file access messages for {file_id}",
                    dataset.dataset_id,
                    e,
                    report,
                )
                continue
            for user_id in users:
                if user_id not in file_access_recipients:
                    file_access_recipients.append(user_id)
        report.file_access_notified_user_ids = await self._send_all(
            file_access_recipients,
            NotificationType.GRANTFILEACCESS,
            dataset.dataset_id,
            dataset.dataset_id,
            timestamp,
            report,
        )

        try:
            await self.index_repo.index_dataset(dataset.dataset_id)
            report.dataset_indexed = True
        except Exception as e:
            logger.error(
                "Post-publication dataset indexing failed",
                extra={"dataset_id": dataset.dataset_id},
                exc_info=True,
            )
            await self._record_failure(
                "Post-publication indexing failed for dataset "
                f"{dataset.dataset_id}.\r\n{e}",
                dataset.dataset_id,
            )
            report.failures.append(f"index dataset: {e}")

        for dataverse_id in outcome.dataverses_to_index:
            try:
                await self.index_repo.index_dataverse(dataverse_id)
                report.reindexed_dataverse_ids.append(dataverse_id)
            except Exception as e:
                logger.error(
                    "Post-publication dataverse re-index failed",
                    extra={
                        "dataset_id": dataset.dataset_id,
                        "dataverse_id": dataverse_id,
                    },
                    exc_info=True,
                )
                await self._record_failure(
                    REINDEX_HINT.format(dataverse_id=dataverse_id)
                    + f"\r\n{e}",
                    dataset.dataset_id,
                )
                report.failures.append(f"index dataverse {dataverse_id}: {e}")

        logger.info(
            "Post-archive fan-out finished",
            extra={
                "dataset_id": dataset.dataset_id,
                "notified": len(report.notified_user_ids),
                "file_access_notified": len(
                    report.file_access_notified_user_ids
                ),
                "failures": len(report.failures),
            },
        )
        return report

    async def _recipients(
        self,
        assignments: Iterable[RoleAssignment],
        permissions: Iterable[Permission],
    ) -> List[str]:
        """Distinct users holding any of the permissions, in role order."""
        wanted = set(permissions)
        recipients: List[str] = []
        for assignment in assignments:
            if wanted.isdisjoint(assignment.permissions):
                continue
            for user_id in await self.role_repo.explicit_users(
                assignment.assignee_id
            ):
                if user_id not in recipients:
                    recipients.append(user_id)
        return recipients

    async def _send_all(
        self,
        recipients: List[str],
        notification_type: NotificationType,
        object_id: str,
        dataset_id: str,
        timestamp: datetime,
        report: FanOutReport,
    ) -> List[str]:
        """Send to each recipient; returns the users actually notified."""
        notified: List[str] = []
        for user_id in recipients:
            try:
                await self.notification_repo.send_notification(
                    UserNotification(
                        user_id=user_id,
                        type=notification_type,
                        object_id=object_id,
                        sent_at=timestamp,
                    )
                )
            except Exception as e:
                await self._notification_failure(
                    f"{notification_type.value} notification to {user_id}",
                    dataset_id,
                    e,
                    report,
                )
                continue
            notified.append(user_id)
        return notified

    async def _notification_failure(
        self,
        what: str,
        dataset_id: str,
        error: Exception,
        report: FanOutReport,
    ) -> None:
        logger.warning(
            f"Failure to send {what} for : {dataset_id} : {error}",
            exc_info=True,
        )
        await self._record_failure(
            f"Failure to send {what} for dataset "
            f"{dataset_id}.\r\n{error}",
            dataset_id,
        )
        report.failures.append(f"{what}: {error}")

    async def _record_failure(self, text: str, dataset_id: str) -> None:
        try:
            await self.failure_log_repo.write(self.command, text, dataset_id)
        except Exception:
            logger.error(
                "Could not write on-success failure log",
                extra={"dataset_id": dataset_id, "text": text},
                exc_info=True,
            )
