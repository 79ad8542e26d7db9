"""
Memory implementation of RoleAssignmentRepository.

Role assignments are defined on objects (dataverses, datasets, files).
Objects may have a parent whose assignments they inherit. Assignees are
either users (``@name``) or groups whose members are expanded on request.
"""

import logging
from typing import Dict, List, Optional

from dataset_archive.domain import Permission, RoleAssignment
from dataset_archive.repositories import RoleAssignmentRepository

logger = logging.getLogger(__name__)


class MemoryRoleAssignmentRepository(RoleAssignmentRepository):
    def __init__(self) -> None:
        self._assignments: Dict[str, List[RoleAssignment]] = {}
        self._parents: Dict[str, str] = {}
        self._groups: Dict[str, List[str]] = {}

    def assign(
        self,
        assignee_id: str,
        object_id: str,
        permissions: List[Permission],
    ) -> RoleAssignment:
        assignment = RoleAssignment(
            assignee_id=assignee_id,
            defined_point_id=object_id,
            permissions=permissions,
        )
        self._assignments.setdefault(object_id, []).append(assignment)
        return assignment

    def set_parent(self, object_id: str, parent_id: Optional[str]) -> None:
        if parent_id is None:
            self._parents.pop(object_id, None)
        else:
            self._parents[object_id] = parent_id

    def add_group(self, group_id: str, members: List[str]) -> None:
        self._groups[group_id] = list(members)

    async def role_assignments(self, object_id: str) -> List[RoleAssignment]:
        found: List[RoleAssignment] = []
        seen = set()
        current: Optional[str] = object_id
        while current is not None and current not in seen:
            seen.add(current)
            found.extend(self._assignments.get(current, []))
            current = self._parents.get(current)
        return found

    async def direct_role_assignments(
        self, object_id: str
    ) -> List[RoleAssignment]:
        return list(self._assignments.get(object_id, []))

    async def explicit_users(self, assignee_id: str) -> List[str]:
        if assignee_id in self._groups:
            return [
                member[1:] if member.startswith("@") else member
                for member in self._groups[assignee_id]
            ]
        if assignee_id.startswith("@"):
            return [assignee_id[1:]]
        return [assignee_id]
