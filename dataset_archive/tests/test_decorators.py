"""
Tests for the Temporal activity registration and workflow proxy decorators.

The decorators are exercised in isolation against the LockRepository
protocol; workflow.execute_activity is patched so no Temporal server or
workflow sandbox is needed.
"""

from datetime import timedelta
from typing import Any, List, Optional
from unittest.mock import AsyncMock, patch

import pytest
from temporalio import activity

from dataset_archive.domain import DatasetLock, LockReason
from dataset_archive.repos.memory import MemoryLockRepository
from dataset_archive.repos.temporal.decorators import (
    FAIL_FAST_RETRY_POLICY,
    discover_protocol_methods,
    revalidate,
    temporal_activity_registration,
    temporal_workflow_proxy,
)
from dataset_archive.repositories import LockRepository
from dataset_archive.tests.factories import FIXED_NOW, minimal_lock

LOCK_METHODS = {"list_for_dataset", "add", "update", "remove"}


class HelperLockRepository(MemoryLockRepository):
    """Adds non-protocol methods that must never become activities."""

    async def purge(self, dataset_id: str) -> None:
        self._locks.pop(dataset_id, None)

    def count(self, dataset_id: str) -> int:
        return len(self._locks.get(dataset_id, {}))


def is_activity(fn: Any) -> bool:
    return "__temporal_activity_definition" in dir(fn)


class TestDiscoverProtocolMethods:
    def test_finds_protocol_methods_only(self) -> None:
        methods = discover_protocol_methods(HelperLockRepository.__mro__)
        assert set(methods) == LOCK_METHODS

    def test_class_without_protocol_has_no_methods(self) -> None:
        class Plain:
            async def fetch(self) -> None:
                pass

        assert discover_protocol_methods(Plain.__mro__) == {}


class TestActivityRegistration:
    def test_protocol_methods_become_named_activities(self) -> None:
        captured: List[str] = []
        original_defn = activity.defn

        def capture_defn(name: Optional[str] = None, **kwargs: Any) -> Any:
            if name:
                captured.append(name)
            return original_defn(name=name, **kwargs)

        with patch(
            "dataset_archive.repos.temporal.decorators.activity.defn",
            side_effect=capture_defn,
        ):

            @temporal_activity_registration("test.lock_repo.memory")
            class TemporalHelperLockRepository(HelperLockRepository):
                pass

        assert set(captured) == {
            f"test.lock_repo.memory.{name}" for name in LOCK_METHODS
        }
        assert is_activity(TemporalHelperLockRepository.add)
        assert not is_activity(TemporalHelperLockRepository.purge)
        assert not is_activity(TemporalHelperLockRepository.count)

    @pytest.mark.asyncio
    async def test_wrapped_methods_keep_behaviour(self) -> None:
        @temporal_activity_registration("test.lock_repo.memory")
        class TemporalHelperLockRepository(HelperLockRepository):
            pass

        repo = TemporalHelperLockRepository()
        await repo.add(minimal_lock("ds-1", LockReason.INGEST))

        locks = await repo.list_for_dataset("ds-1")

        assert [lock.reason for lock in locks] == [LockReason.INGEST]
        assert repo.count("ds-1") == 1
        assert repo.add.__name__ == "add"
        assert isinstance(repo, LockRepository)


class TestWorkflowProxy:
    @pytest.fixture
    def proxy_class(self):
        @temporal_workflow_proxy(
            "test.lock_repo.memory",
            default_timeout_seconds=10,
            fail_fast_methods=["add"],
            method_timeouts={"list_for_dataset": 5},
        )
        class WorkflowLockRepositoryProxy(LockRepository):
            pass

        return WorkflowLockRepositoryProxy

    @pytest.mark.asyncio
    async def test_call_executes_named_activity(self, proxy_class) -> None:
        stored = minimal_lock("ds-1", LockReason.WORKFLOW)
        with patch(
            "temporalio.workflow.execute_activity", new_callable=AsyncMock
        ) as mock_execute_activity:
            mock_execute_activity.return_value = [
                stored.model_dump(mode="json")
            ]

            locks = await proxy_class().list_for_dataset("ds-1")

        assert locks == [stored]
        assert isinstance(locks[0], DatasetLock)
        assert locks[0].created_at == FIXED_NOW
        mock_execute_activity.assert_awaited_once_with(
            "test.lock_repo.memory.list_for_dataset",
            args=["ds-1"],
            start_to_close_timeout=timedelta(seconds=5),
            retry_policy=None,
        )

    @pytest.mark.asyncio
    async def test_fail_fast_methods_are_not_retried(
        self, proxy_class
    ) -> None:
        lock = minimal_lock("ds-1", LockReason.WORKFLOW)
        with patch(
            "temporalio.workflow.execute_activity", new_callable=AsyncMock
        ) as mock_execute_activity:
            mock_execute_activity.return_value = None

            assert await proxy_class().add(lock) is None

        _, kwargs = mock_execute_activity.call_args
        assert kwargs["retry_policy"] is FAIL_FAST_RETRY_POLICY
        assert kwargs["start_to_close_timeout"] == timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_keyword_arguments_are_rejected(self, proxy_class) -> None:
        with patch(
            "temporalio.workflow.execute_activity", new_callable=AsyncMock
        ) as mock_execute_activity:
            with pytest.raises(ValueError, match="Use positional args"):
                await proxy_class().remove(
                    dataset_id="ds-1", reason=LockReason.WORKFLOW
                )

        mock_execute_activity.assert_not_called()


class TestRevalidate:
    def test_optional_model_from_dict(self) -> None:
        lock = minimal_lock("ds-1", LockReason.INGEST)
        result = revalidate(
            Optional[DatasetLock], lock.model_dump(mode="json")
        )
        assert result == lock

    def test_none_stays_none(self) -> None:
        assert revalidate(Optional[DatasetLock], None) is None

    def test_model_instance_is_returned_as_is(self) -> None:
        lock = minimal_lock("ds-1", LockReason.INGEST)
        assert revalidate(DatasetLock, lock) is lock

    def test_plain_values_pass_through(self) -> None:
        assert revalidate(bool, True) is True
        assert revalidate(List[str], ["a", "b"]) == ["a", "b"]
