import datetime
import posixpath
import uuid

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.schema import UniqueConstraint

from .database import Base


class BaseModel:
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created = Column(DateTime, default=datetime.datetime.utcnow)


class Blob(BaseModel, Base):
    """
    An immutable binary object living on some storage service.

    Sources and the artifacts derived from them are both blobs, so an
    artifact can itself be the source of further variants.
    """

    __tablename__ = "blob"
    __table_args__ = (UniqueConstraint("key"),)

    # opaque key within the service
    key = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    blob_metadata = Column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), default=dict
    )
    byte_size = Column(BigInteger, nullable=False)
    # sha256 hex of the content
    checksum = Column(String(64), nullable=True)
    service_name = Column(String, nullable=False)

    variant_records = relationship(
        "VariantRecord",
        back_populates="blob",
        foreign_keys="VariantRecord.blob_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def basename(self) -> str:
        return posixpath.splitext(self.filename)[0]

    @property
    def extension(self) -> str:
        return posixpath.splitext(self.filename)[1].lstrip(".").lower()

    def __repr__(self) -> str:
        return f"<Blob(id={self.id}, filename={self.filename}, service={self.service_name})>"


class VariantRecord(BaseModel, Base):
    """
    Marks that the variation with `variation_digest` of blob `blob_id` has been
    generated and stored as `artifact`.

    At most one record exists per (blob, digest); the unique constraint is what
    concurrent derivations race on.
    """

    __tablename__ = "variant_record"
    __table_args__ = (UniqueConstraint("blob_id", "variation_digest"),)

    blob_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("blob.id", ondelete="CASCADE"),
        nullable=False,
    )
    variation_digest = Column(String(64), nullable=False)
    artifact_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("blob.id", ondelete="CASCADE"),
        nullable=False,
    )

    blob = relationship(Blob, foreign_keys=blob_id, back_populates="variant_records")
    artifact = relationship(Blob, foreign_keys=artifact_id)

    def __repr__(self) -> str:
        return (
            f"<VariantRecord(id={self.id}, blob_id={self.blob_id}, "
            f"digest={self.variation_digest})>"
        )
