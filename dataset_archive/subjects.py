"""
Propagation of a dataset's subject terms up its dataverse tree.

Every ancestor dataverse of a published dataset lists the subjects of the
datasets below it. Publishing adds the missing terms to each ancestor and
reports which dataverses grew, so they can be re-indexed after commit.
"""

import logging
from typing import List, Optional, Set

from .domain import SUBJECT_FIELD_TYPE, Dataset, DatasetField
from .repositories import DataverseRepository

logger = logging.getLogger(__name__)


def subject_field(dataset: Dataset) -> Optional[DatasetField]:
    """The first field of the latest version typed as a subject."""
    for field in dataset.latest_version.dataset_fields:
        if field.type_name == SUBJECT_FIELD_TYPE:
            return field
    return None


async def propagate_subjects(
    dataset: Dataset, dataverse_repo: DataverseRepository
) -> List[str]:
    """Add the dataset's subjects to every ancestor dataverse.

    Args:
        dataset: Dataset whose latest version carries the subjects
        dataverse_repo: Repository used to walk and save the owner chain

    Returns:
        Ids of the dataverses that gained at least one subject, nearest
        first, each listed once.
    """
    field = subject_field(dataset)
    if field is None:
        logger.debug(
            "Dataset has no subject field; nothing to propagate",
            extra={"dataset_id": dataset.dataset_id},
        )
        return []

    grown: List[str] = []
    visited: Set[str] = set()
    dataverse_id: Optional[str] = dataset.owner_id

    while dataverse_id is not None and dataverse_id not in visited:
        visited.add(dataverse_id)
        dataverse = await dataverse_repo.get(dataverse_id)
        if dataverse is None:
            logger.warning(
                "Ancestor dataverse not found; stopping subject propagation",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "dataverse_id": dataverse_id,
                },
            )
            break

        added = False
        for value in field.controlled_vocabulary_values:
            if dataverse.has_subject(value):
                logger.debug(
                    f"dv {dataverse.alias} already has subject "
                    f"{value.str_value}"
                )
                continue
            dataverse.subjects.append(value)
            added = True

        if added:
            await dataverse_repo.save(dataverse)
            grown.append(dataverse.dataverse_id)
            logger.info(
                "New subjects added to dataverse",
                extra={
                    "dataverse_id": dataverse.dataverse_id,
                    "alias": dataverse.alias,
                },
            )

        dataverse_id = dataverse.owner_id

    return grown
