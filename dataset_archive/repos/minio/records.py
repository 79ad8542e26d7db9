"""
Minio implementations of the record repositories: dataset version users,
private URLs, the on-success failure log and role assignments.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from dataset_archive.domain import (
    DatasetVersionUser,
    PrivateUrl,
    RoleAssignment,
    utc_now,
)
from dataset_archive.repositories import (
    DatasetVersionUserRepository,
    OnSuccessFailureLogRepository,
    PrivateUrlRepository,
    RoleAssignmentRepository,
)
from .client import MinioClient, MinioRepositoryMixin

logger = logging.getLogger(__name__)


class MinioDatasetVersionUserRepository(
    DatasetVersionUserRepository, MinioRepositoryMixin
):
    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "dataset-version-users"
        self.ensure_buckets_exist([self.bucket_name])

    async def get(
        self, version_id: str, user_id: str
    ) -> Optional[DatasetVersionUser]:
        return self.get_json_object(
            self.bucket_name, f"{version_id}/{user_id}", DatasetVersionUser
        )

    async def save(self, record: DatasetVersionUser) -> None:
        self.put_json_object(
            self.bucket_name,
            f"{record.version_id}/{record.user_id}",
            record,
            extra_log_data={
                "version_id": record.version_id,
                "user_id": record.user_id,
            },
        )


class MinioPrivateUrlRepository(PrivateUrlRepository, MinioRepositoryMixin):
    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "private-urls"
        self.ensure_buckets_exist([self.bucket_name])

    async def get(self, dataset_id: str) -> Optional[PrivateUrl]:
        return self.get_json_object(self.bucket_name, dataset_id, PrivateUrl)

    async def delete(self, dataset_id: str) -> None:
        self.remove_object(self.bucket_name, dataset_id)
        logger.debug(
            "MinioPrivateUrlRepository: Private URL deleted",
            extra={"dataset_id": dataset_id},
        )


class FailureLogEntry(BaseModel):
    dataset_id: str
    command: str
    text: str
    written_at: str = Field(default_factory=lambda: utc_now().isoformat())


class MinioOnSuccessFailureLogRepository(
    OnSuccessFailureLogRepository, MinioRepositoryMixin
):
    """One object per entry under ``{dataset_id}/``, ordered by write time."""

    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "on-success-failures"
        self.ensure_buckets_exist([self.bucket_name])

    async def write(self, command: str, text: str, dataset_id: str) -> None:
        entry = FailureLogEntry(
            dataset_id=dataset_id, command=command, text=text
        )
        count = len(
            list(
                self.client.list_objects(
                    self.bucket_name, prefix=f"{dataset_id}/", recursive=True
                )
            )
        )
        self.put_json_object(
            self.bucket_name,
            f"{dataset_id}/{count:06d}",
            entry,
            extra_log_data={"dataset_id": dataset_id, "command": command},
        )
        logger.warning(
            "MinioOnSuccessFailureLogRepository: Failure recorded",
            extra={"dataset_id": dataset_id, "command": command},
        )

    async def list_for_dataset(self, dataset_id: str) -> List[str]:
        entries = self.list_json_objects(
            self.bucket_name, f"{dataset_id}/", FailureLogEntry
        )
        return [
            f"{entry.command}: {entry.text}"
            for entry in sorted(entries, key=lambda e: e.written_at)
        ]


class ObjectRoles(BaseModel):
    """Role assignments defined on one object, plus its parent."""

    object_id: str
    parent_id: Optional[str] = None
    assignments: List[RoleAssignment] = Field(default_factory=list)


class RoleGroup(BaseModel):
    group_id: str
    members: List[str] = Field(default_factory=list)


class MinioRoleAssignmentRepository(
    RoleAssignmentRepository, MinioRepositoryMixin
):
    """
    Reads role assignments from the "role-assignments" bucket (one
    ObjectRoles document per object) and group membership from the
    "role-groups" bucket.
    """

    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.assignments_bucket = "role-assignments"
        self.groups_bucket = "role-groups"
        self.ensure_buckets_exist(
            [self.assignments_bucket, self.groups_bucket]
        )

    async def save_object_roles(self, roles: ObjectRoles) -> None:
        self.put_json_object(self.assignments_bucket, roles.object_id, roles)

    async def save_group(self, group: RoleGroup) -> None:
        self.put_json_object(self.groups_bucket, group.group_id, group)

    async def role_assignments(self, object_id: str) -> List[RoleAssignment]:
        found: List[RoleAssignment] = []
        seen = set()
        current: Optional[str] = object_id
        while current is not None and current not in seen:
            seen.add(current)
            roles = self.get_json_object(
                self.assignments_bucket, current, ObjectRoles
            )
            if roles is None:
                break
            found.extend(roles.assignments)
            current = roles.parent_id
        return found

    async def direct_role_assignments(
        self, object_id: str
    ) -> List[RoleAssignment]:
        roles = self.get_json_object(
            self.assignments_bucket, object_id, ObjectRoles
        )
        return list(roles.assignments) if roles else []

    async def explicit_users(self, assignee_id: str) -> List[str]:
        group = self.get_json_object(
            self.groups_bucket, assignee_id, RoleGroup
        )
        members = group.members if group is not None else [assignee_id]
        return [
            member[1:] if member.startswith("@") else member
            for member in members
        ]
