"""
Local implementation of the MetadataValidatorRepository protocol.

Runs the validator executable as a child process. The serialized dataset
is written to a temporary file whose path is passed as the only argument,
and the same JSON is fed to the process on stdin. The dataset is accepted
only when the process exits with 0 and prints the success marker.
"""

import asyncio
import logging
import subprocess
import tempfile
from pathlib import Path

from dataset_archive.domain import Dataset
from dataset_archive.repositories import MetadataValidatorRepository

logger = logging.getLogger(__name__)


class LocalMetadataValidatorRepository(MetadataValidatorRepository):
    def __init__(
        self, success_marker: str = "success", timeout_seconds: int = 60
    ) -> None:
        self.success_marker = success_marker
        self.timeout_seconds = timeout_seconds

    async def validate(self, dataset: Dataset, executable: str) -> bool:
        payload = dataset.model_dump_json()
        return await asyncio.to_thread(self._run, executable, payload, dataset)

    def _run(self, executable: str, payload: str, dataset: Dataset) -> bool:
        with tempfile.TemporaryDirectory(prefix="dataset-validation-") as tmp:
            json_path = Path(tmp) / f"{dataset.dataset_id}.json"
            json_path.write_text(payload, encoding="utf-8")

            try:
                result = subprocess.run(
                    [executable, str(json_path)],
                    input=payload,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_seconds,
                    check=False,
                )
            except FileNotFoundError:
                logger.error(
                    "Metadata validator executable not found",
                    extra={"executable": executable},
                )
                return False
            except PermissionError:
                logger.error(
                    "Metadata validator executable is not runnable",
                    extra={"executable": executable},
                )
                return False
            except OSError as e:
                logger.error(
                    "Metadata validator could not be started",
                    extra={"executable": executable, "error": str(e)},
                )
                return False
            except subprocess.TimeoutExpired:
                logger.error(
                    "Metadata validator timed out",
                    extra={
                        "executable": executable,
                        "timeout_seconds": self.timeout_seconds,
                        "dataset_id": dataset.dataset_id,
                    },
                )
                return False

        accepted = (
            result.returncode == 0 and self.success_marker in result.stdout
        )
        logger.debug(
            "Metadata validator finished",
            extra={
                "executable": executable,
                "dataset_id": dataset.dataset_id,
                "returncode": result.returncode,
                "accepted": accepted,
                "stderr": result.stderr[-2000:],
            },
        )
        return accepted
