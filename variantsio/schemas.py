import datetime
import enum
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel


class DBBaseModel(BaseModel):
    id: uuid.UUID
    created: datetime.datetime

    class Config:
        from_attributes = True


###########################################################
# Errors
###########################################################


class VariantError(RuntimeError):
    """Base for every failure that crosses the derivation engine boundary"""


DerivationError = VariantError


class InvariableError(VariantError):
    """No registered transformer supports the blob's content type"""


class TransformationError(VariantError):
    """A transformer supports the content type but failed on this variation"""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class StoreUnavailable(VariantError):
    """Metadata or byte store I/O failed.  Retrying the derivation is safe."""


class ServiceNotConfigured(VariantError, KeyError):
    """A blob names a storage service missing from the configuration"""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class VariantNotProcessed(VariantError):
    pass


class ConflictRetry(Exception):
    """
    Internal: another caller inserted the same variant record first.
    Never leaves the record store.
    """


###########################################################
# Blob Schemas
###########################################################


class BlobBase(BaseModel):
    key: str
    filename: str
    content_type: Optional[str] = None
    byte_size: int
    checksum: Optional[str] = None
    service_name: str


class BlobDB(DBBaseModel, BlobBase):
    blob_metadata: Dict[str, Any] = {}


###########################################################
# Variant Schemas
###########################################################


class VariantState(str, enum.Enum):
    REQUESTED = "requested"
    DIGEST_COMPUTED = "digest_computed"
    HIT = "hit"
    MISS = "miss"
    TRANSFORMING = "transforming"
    PERSISTING = "persisting"
    RESOLVED = "resolved"
    FAILED = "failed"


class VariantRecordDB(DBBaseModel):
    blob_id: uuid.UUID
    variation_digest: str
    artifact_id: uuid.UUID


class ResolvedArtifact(BaseModel):
    """
    Where a processed variant lives.  `record_id` and `artifact_id` are empty
    for untracked variants.
    """

    blob_id: uuid.UUID
    variation_digest: str
    service_name: str
    key: str
    filename: str
    content_type: Optional[str] = None
    byte_size: Optional[int] = None
    record_id: Optional[uuid.UUID] = None
    artifact_id: Optional[uuid.UUID] = None
    # True when this call generated the artifact
    created: bool = False
