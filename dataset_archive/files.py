"""
File publication step of the finalize phase.
"""

import logging
from datetime import datetime
from typing import List

from .domain import Dataset

logger = logging.getLogger(__name__)


def publish_files(dataset: Dataset, release_time: datetime) -> List[str]:
    """Stamp unpublished files and sync restriction from the latest version.

    Returns the ids of files published by this call, in dataset order.
    """
    latest_version_id = dataset.latest_version.version_id
    newly_published: List[str] = []

    for data_file in dataset.files:
        if data_file.publication_date is None:
            data_file.publication_date = release_time
            newly_published.append(data_file.file_id)

        metadata = data_file.file_metadata
        if metadata is not None and metadata.version_id == latest_version_id:
            data_file.restricted = metadata.restricted

        if (
            data_file.restricted
            and dataset.thumbnail_file_id == data_file.file_id
        ):
            logger.info(
                "Detaching restricted file from dataset thumbnail",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "file_id": data_file.file_id,
                },
            )
            dataset.thumbnail_file_id = None

    logger.debug(
        "Files published",
        extra={
            "dataset_id": dataset.dataset_id,
            "newly_published": newly_published,
        },
    )
    return newly_published
