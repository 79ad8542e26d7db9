"""
MinioClient protocol and shared helpers for MinIO-backed repositories.

Repositories depend on the MinioClient protocol rather than on
``minio.Minio`` directly, so tests can hand them an in-memory fake.
Entities are stored as pydantic JSON documents, one object per entity.
"""

import io
import logging
import os
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    Type,
    TypeVar,
    runtime_checkable,
)

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@runtime_checkable
class MinioClient(Protocol):
    """
    The subset of the MinIO client interface used by the repositories.

    Both ``minio.Minio`` and the fake client used in tests satisfy it.
    """

    def bucket_exists(self, bucket_name: str) -> bool:
        ...

    def make_bucket(self, bucket_name: str) -> None:
        ...

    def put_object(
        self,
        bucket_name: str,
        object_name: str,
        data: Any,
        length: int,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        ...

    def get_object(self, bucket_name: str, object_name: str) -> Any:
        """Return a response with read(), stream(), close() and
        release_conn(); raises S3Error with code NoSuchKey when absent."""
        ...

    def stat_object(self, bucket_name: str, object_name: str) -> Any:
        ...

    def list_objects(
        self,
        bucket_name: str,
        prefix: Optional[str] = None,
        recursive: bool = False,
    ) -> Iterator[Any]:
        ...

    def remove_object(self, bucket_name: str, object_name: str) -> None:
        ...


def create_minio_client(
    endpoint: Optional[str] = None,
    access_key: Optional[str] = None,
    secret_key: Optional[str] = None,
    secure: bool = False,
) -> Minio:
    """Build a MinIO client from arguments or MINIO_* environment."""
    endpoint = endpoint or os.environ.get("MINIO_ENDPOINT", "localhost:9000")
    logger.debug(
        "Creating Minio client",
        extra={"endpoint": endpoint, "secure": secure},
    )
    return Minio(
        endpoint,
        access_key=access_key
        or os.environ.get("MINIO_ROOT_USER", "minioadmin"),
        secret_key=secret_key
        or os.environ.get("MINIO_ROOT_PASSWORD", "minioadmin"),
        secure=secure,
    )


def is_no_such_key(error: S3Error) -> bool:
    return getattr(error, "code", None) in ("NoSuchKey", "NoSuchObject")


class MinioRepositoryMixin:
    """JSON object helpers shared by the MinIO repositories."""

    client: MinioClient

    def ensure_buckets_exist(self, bucket_names: Iterable[str]) -> None:
        for bucket_name in bucket_names:
            try:
                if not self.client.bucket_exists(bucket_name):
                    logger.info(
                        "Creating Minio bucket",
                        extra={"bucket_name": bucket_name},
                    )
                    self.client.make_bucket(bucket_name)
            except S3Error as e:
                logger.error(
                    "Failed to create Minio bucket",
                    extra={"bucket_name": bucket_name, "error": str(e)},
                )
                raise

    def get_json_object(
        self,
        bucket_name: str,
        object_name: str,
        model_class: Type[M],
        extra_log_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[M]:
        """Load a stored model; None when the object does not exist."""
        try:
            response = self.client.get_object(bucket_name, object_name)
            try:
                data = response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as e:
            if is_no_such_key(e):
                logger.debug(
                    "Object not found in Minio",
                    extra={
                        "bucket_name": bucket_name,
                        "object_name": object_name,
                        **(extra_log_data or {}),
                    },
                )
                return None
            logger.error(
                f"Error reading object from Minio: {e}",
                extra={
                    "bucket_name": bucket_name,
                    "object_name": object_name,
                    "error_code": e.code,
                },
            )
            raise
        return model_class.model_validate_json(data.decode("utf-8"))

    def put_json_object(
        self,
        bucket_name: str,
        object_name: str,
        model: BaseModel,
        extra_log_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = model.model_dump_json().encode("utf-8")
        try:
            self.client.put_object(
                bucket_name,
                object_name,
                io.BytesIO(payload),
                len(payload),
                content_type="application/json",
            )
        except S3Error as e:
            logger.error(
                f"Error writing object to Minio: {e}",
                extra={
                    "bucket_name": bucket_name,
                    "object_name": object_name,
                    "error_code": e.code,
                },
            )
            raise
        logger.debug(
            "Object written to Minio",
            extra={
                "bucket_name": bucket_name,
                "object_name": object_name,
                "payload_size_bytes": len(payload),
                **(extra_log_data or {}),
            },
        )

    def list_json_objects(
        self, bucket_name: str, prefix: str, model_class: Type[M]
    ) -> List[M]:
        found: List[M] = []
        for obj in self.client.list_objects(
            bucket_name, prefix=prefix, recursive=True
        ):
            model = self.get_json_object(
                bucket_name, obj.object_name, model_class
            )
            if model is not None:
                found.append(model)
        return found

    def object_exists(self, bucket_name: str, object_name: str) -> bool:
        try:
            self.client.stat_object(bucket_name, object_name)
        except S3Error as e:
            if is_no_such_key(e):
                return False
            raise
        return True

    def remove_object(self, bucket_name: str, object_name: str) -> None:
        try:
            self.client.remove_object(bucket_name, object_name)
        except S3Error as e:
            if not is_no_such_key(e):
                raise
