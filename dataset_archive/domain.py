"""
Domain models for the dataset long-term-archive publication engine.

These are pydantic models describing datasets, their versions and files,
the dataverse containers that own them, and the locks that make a dataset
non-editable while a publication is in flight. The models carry no
persistence or framework concerns; repositories load and save them.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

SUBJECT_FIELD_TYPE = "subject"
FILE_VALIDATION_ERROR = "FILE VALIDATION ERROR"

ARCHIVE_COMMAND = "ArchiveDataset"
FINALIZE_COMMAND = "FinalizeDatasetArchive"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- Enums ---


class VersionState(str, Enum):
    """Publication state of a dataset version."""

    DRAFT = "DRAFT"
    RELEASED = "RELEASED"
    LONGTERM_ARCHIVED = "LONGTERM_ARCHIVED"
    DEACCESSIONED = "DEACCESSIONED"


class LockReason(str, Enum):
    """Why a dataset is currently non-editable."""

    FINALIZE_PUBLICATION = "finalizePublication"
    WORKFLOW = "Workflow"
    INGEST = "Ingest"
    EDIT_IN_PROGRESS = "EditInProgress"
    IN_REVIEW = "InReview"
    FILE_VALIDATION_FAILED = "FileValidationFailed"
    DCM_UPLOAD = "DcmUpload"
    GLOBUS_UPLOAD = "GlobusUpload"


class Permission(str, Enum):
    VIEW_UNPUBLISHED_DATASET = "ViewUnpublishedDataset"
    DOWNLOAD_FILE = "DownloadFile"
    PUBLISH_DATASET = "PublishDataset"


class NotificationType(str, Enum):
    PUBLISHEDDS = "PUBLISHEDDS"
    GRANTFILEACCESS = "GRANTFILEACCESS"


class TriggerType(str, Enum):
    """Workflow triggers understood by the workflow engine."""

    ARCHIVE_DATASET = "ArchiveDataset"
    POST_ARCHIVE_DATASET = "PostArchiveDataset"


class ArchiveStatus(str, Enum):
    """Outcome of the kick-off phase."""

    WORKFLOW = "Workflow"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class ChecksumType(str, Enum):
    MD5 = "MD5"
    SHA1 = "SHA-1"
    SHA256 = "SHA-256"
    SHA512 = "SHA-512"


# --- Users and requests ---


class User(BaseModel):
    """A principal issuing archive commands."""

    identifier: str
    authenticated: bool = True
    superuser: bool = False

    @property
    def user_id(self) -> str:
        """Identifier without the leading '@' used by display forms."""
        if self.identifier.startswith("@"):
            return self.identifier[1:]
        return self.identifier


class ArchiveRequest(BaseModel):
    """The caller of a command, plus the workflow invocation it runs in."""

    user: User
    workflow_invocation_id: Optional[str] = None
    source_address: Optional[str] = None


# --- Dataverse containers ---


class ControlledVocabularyValue(BaseModel):
    """A term from a predefined vocabulary, compared by its string value."""

    str_value: str
    value_id: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ControlledVocabularyValue):
            return NotImplemented
        return self.str_value == other.str_value

    def __hash__(self) -> int:
        return hash(self.str_value)


class Dataverse(BaseModel):
    """Named container owning datasets and child dataverses."""

    dataverse_id: str
    alias: str
    name: str = ""
    owner_id: Optional[str] = Field(
        None, description="Owning dataverse; None for the root"
    )
    publication_date: Optional[datetime] = None
    subjects: List[ControlledVocabularyValue] = Field(default_factory=list)
    modification_time: Optional[datetime] = None

    @property
    def released(self) -> bool:
        return self.publication_date is not None

    def has_subject(self, value: ControlledVocabularyValue) -> bool:
        return value in self.subjects


# --- Dataset metadata ---


class DatasetField(BaseModel):
    """Typed metadata on a dataset version."""

    type_name: str
    values: List[str] = Field(default_factory=list)
    controlled_vocabulary_values: List[ControlledVocabularyValue] = Field(
        default_factory=list
    )
    required: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.values and not self.controlled_vocabulary_values


class TermsOfUseAndAccess(BaseModel):
    license: Optional[str] = None
    terms_of_use: Optional[str] = None
    file_access_request: bool = False

    @property
    def has_license_or_terms(self) -> bool:
        return self.license is not None or bool(
            self.terms_of_use and self.terms_of_use.strip()
        )


class FileMetadata(BaseModel):
    """Per-version view of a file."""

    version_id: str
    label: str = ""
    restricted: bool = False


class Embargo(BaseModel):
    date_available: date
    reason: Optional[str] = None


class DataFile(BaseModel):
    """A physical file of a dataset."""

    file_id: str
    filesize: int = Field(0, ge=0)
    storage_identifier: str = Field(
        ..., description="driver://location of the physical object"
    )
    checksum_type: ChecksumType = ChecksumType.MD5
    checksum_value: Optional[str] = None
    publication_date: Optional[datetime] = None
    restricted: bool = False
    embargo: Optional[Embargo] = None
    file_metadata: Optional[FileMetadata] = None

    @property
    def driver_id(self) -> str:
        if "://" in self.storage_identifier:
            return self.storage_identifier.split("://", 1)[0]
        return "file"

    @property
    def storage_location(self) -> str:
        if "://" in self.storage_identifier:
            return self.storage_identifier.split("://", 1)[1]
        return self.storage_identifier


class DatasetVersion(BaseModel):
    version_id: str
    state: VersionState = VersionState.DRAFT
    version_number: Optional[int] = None
    minor_version_number: Optional[int] = None
    release_time: Optional[datetime] = None
    last_update_time: Optional[datetime] = None
    terms_of_use: Optional[TermsOfUseAndAccess] = None
    external_status_label: Optional[str] = None
    dataset_fields: List[DatasetField] = Field(default_factory=list)

    @property
    def released(self) -> bool:
        return self.state in (
            VersionState.RELEASED,
            VersionState.LONGTERM_ARCHIVED,
        )

    @property
    def friendly_version_number(self) -> str:
        if self.version_number is None:
            return "DRAFT"
        return f"{self.version_number}.{self.minor_version_number or 0}"


class DatasetLock(BaseModel):
    """A named lock on a dataset; at most one per reason."""

    dataset_id: str
    reason: LockReason
    user_id: str
    info: str = ""
    workflow_invocation_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Dataset(BaseModel):
    """Root aggregate: versions, files and locks of one dataset."""

    dataset_id: str
    global_id: str
    owner_id: str
    publication_date: Optional[datetime] = None
    release_user_id: Optional[str] = None
    modification_time: Optional[datetime] = None
    version_number: Optional[int] = Field(
        None, description="Major number of the last released version"
    )
    minor_version_number: Optional[int] = None
    versions: List[DatasetVersion]
    files: List[DataFile] = Field(default_factory=list)
    locks: List[DatasetLock] = Field(default_factory=list)
    thumbnail_file_id: Optional[str] = None
    file_access_request: bool = False
    embargo_citation_date: Optional[datetime] = None
    revision: int = Field(
        0, ge=0, description="Row version for optimistic concurrency"
    )

    @field_validator("versions")
    @classmethod
    def versions_must_not_be_empty(
        cls, v: List[DatasetVersion]
    ) -> List[DatasetVersion]:
        if not v:
            raise ValueError("Dataset must have at least one version")
        return v

    @property
    def latest_version(self) -> DatasetVersion:
        return self.versions[-1]

    @property
    def released(self) -> bool:
        return self.publication_date is not None

    def get_lock_for(self, reason: LockReason) -> Optional[DatasetLock]:
        for lock in self.locks:
            if lock.reason == reason:
                return lock
        return None

    def is_locked_for(self, reason: LockReason) -> bool:
        return self.get_lock_for(reason) is not None

    def get_file(self, file_id: str) -> Optional[DataFile]:
        for data_file in self.files:
            if data_file.file_id == file_id:
                return data_file
        return None


# --- Records produced by the engine ---


class DatasetVersionUser(BaseModel):
    """Who contributed to a version, and when they last touched it."""

    version_id: str
    user_id: str
    last_update_date: datetime


class PrivateUrl(BaseModel):
    dataset_id: str
    token: str


class RoleAssignment(BaseModel):
    assignee_id: str
    defined_point_id: str
    permissions: List[Permission] = Field(default_factory=list)


class UserNotification(BaseModel):
    user_id: str
    type: NotificationType
    object_id: str
    sent_at: datetime


# --- Workflow engine contract ---


class WorkflowStep(BaseModel):
    """One step of a pre-archive workflow definition."""

    provider: str = Field("internal", description="Step provider namespace")
    step_type: str = Field(
        ..., description="'log', 'pause', 'validate_metadata', ..."
    )
    parameters: Dict[str, str] = Field(default_factory=dict)


class WorkflowDefinition(BaseModel):
    workflow_id: str
    name: str
    trigger: TriggerType = TriggerType.ARCHIVE_DATASET
    steps: List[WorkflowStep] = Field(default_factory=list)


class WorkflowContext(BaseModel):
    """Resumption context handed to the workflow engine."""

    dataset_id: str
    trigger: TriggerType
    externally_released: bool = False
    user_identifier: str
    superuser: bool = False
    invocation_id: Optional[str] = None
    next_version_number: Optional[int] = None
    next_minor_version_number: Optional[int] = None


class ArchiveDatasetResult(BaseModel):
    """Tagged result of the kick-off phase."""

    dataset: Dataset
    status: ArchiveStatus

    @property
    def is_workflow(self) -> bool:
        return self.status == ArchiveStatus.WORKFLOW


class FanOutReport(BaseModel):
    """What the post-commit fan-out managed to do."""

    notified_user_ids: List[str] = Field(default_factory=list)
    file_access_notified_user_ids: List[str] = Field(default_factory=list)
    dataset_indexed: bool = False
    reindexed_dataverse_ids: List[str] = Field(default_factory=list)
    failures: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class FinalizeOutcome(BaseModel):
    dataset: Dataset
    newly_published_file_ids: List[str] = Field(default_factory=list)
    dataverses_to_index: List[str] = Field(default_factory=list)
    fan_out: Optional[FanOutReport] = None


class ArchiveWorkflowInput(BaseModel):
    """Input of a pre-archive workflow run."""

    workflow: WorkflowDefinition
    context: WorkflowContext


class FinalizeWorkflowInput(BaseModel):
    dataset_id: str
    request: ArchiveRequest
