import contextlib
import hashlib
import logging
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import analyzers, models, utils
from .schemas import ConflictRetry, StoreUnavailable
from .services import ByteStore
from .settings import settings

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def store_errors(db: Session):
    """Translate metadata store failures other than integrity violations"""
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as e:
        db.rollback()
        raise StoreUnavailable(f"Metadata store unavailable: {e.orig}") from e


###########################################################
# Blobs
###########################################################


def blob_build(
    data: bytes,
    filename: str,
    key: str,
    service_name: str,
    content_type: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> models.Blob:
    return models.Blob(
        key=key,
        filename=filename,
        content_type=utils.guess_content_type(filename, content_type),
        blob_metadata=metadata or {},
        byte_size=len(data),
        checksum=hashlib.sha256(data).hexdigest(),
        service_name=service_name,
    )


def blob_create(
    db: Session,
    byte_store: ByteStore,
    data: bytes,
    filename: str,
    content_type: Optional[str] = None,
    service_name: Optional[str] = None,
    analyze: bool = False,
) -> models.Blob:
    """
    Upload bytes to a service, then record the blob.  A failure after the
    upload leaves unreferenced bytes, never a row without bytes.
    """
    service_name = service_name or settings.default_service
    content_type = utils.guess_content_type(filename, content_type)
    metadata = analyzers.analyze(data, content_type) if analyze else {}
    key = byte_store.put(service_name, data, content_type)
    blob_db = blob_build(
        data,
        filename,
        key=key,
        service_name=service_name,
        content_type=content_type,
        metadata=metadata,
    )
    with store_errors(db):
        db.add(blob_db)
        db.commit()
        db.refresh(blob_db)
    logger.info("Created blob %s (%s) on %s", blob_db.id, filename, service_name)
    return blob_db


def blob_get(db: Session, blob_id: uuid.UUID) -> models.Blob:
    with store_errors(db):
        return db.query(models.Blob).get_or_raise(blob_id)


def blob_search(db: Session, blob_ids: Iterable[uuid.UUID]) -> List[models.Blob]:
    with store_errors(db):
        return db.query(models.Blob).filter(models.Blob.id.in_(list(blob_ids))).all()


def blob_source_ids(db: Session) -> List[uuid.UUID]:
    """Ids of every blob that is not itself a variant artifact"""
    artifact_ids = select(models.VariantRecord.artifact_id)
    with store_errors(db):
        rows = (
            db.query(models.Blob.id)
            .filter(models.Blob.id.not_in(artifact_ids))
            .order_by(models.Blob.created, models.Blob.id)
            .all()
        )
    return [row.id for row in rows]


def blob_download(byte_store: ByteStore, blob: models.Blob) -> bytes:
    return byte_store.get(blob.service_name, blob.key)


def _collect_purgeable(blob: models.Blob, blobs: List[models.Blob]):
    blobs.append(blob)
    for record in blob.variant_records:
        _collect_purgeable(record.artifact, blobs)


def blob_purge(db: Session, byte_store: ByteStore, blob: models.Blob) -> List[uuid.UUID]:
    """
    Delete a blob, its variant records and their artifacts.  Rows go first;
    bytes that fail to delete afterwards are left orphaned.
    """
    blobs: List[models.Blob] = []
    with store_errors(db):
        _collect_purgeable(blob, blobs)
        locations = [(b.id, b.service_name, b.key) for b in blobs]
        for b in blobs:
            db.delete(b)
        db.commit()
    for _, service_name, key in locations:
        try:
            byte_store.delete(service_name, key)
        except StoreUnavailable as e:
            logger.warning("Orphaned %s/%s: %s", service_name, key, e)
    return [blob_id for blob_id, _, _ in locations]


###########################################################
# Variant records
###########################################################


def variant_record_search(db: Session, blob_id: uuid.UUID) -> List[models.VariantRecord]:
    with store_errors(db):
        return (
            db.query(models.VariantRecord)
            .options(joinedload(models.VariantRecord.artifact))
            .filter(models.VariantRecord.blob_id == blob_id)
            .order_by(models.VariantRecord.created)
            .all()
        )


def variant_record_find(
    db: Session, blob_id: uuid.UUID, digest: str
) -> Optional[models.VariantRecord]:
    with store_errors(db):
        return (
            db.query(models.VariantRecord)
            .options(joinedload(models.VariantRecord.artifact))
            .filter(
                and_(
                    models.VariantRecord.blob_id == blob_id,
                    models.VariantRecord.variation_digest == digest,
                )
            )
            .first()
        )


def variant_record_find_all(
    db: Session,
    blob_ids: Iterable[uuid.UUID],
    digest: str,
    batch_size: int = 1000,
) -> Dict[uuid.UUID, models.VariantRecord]:
    """One query per `batch_size` blobs, keyed by blob id"""
    found: Dict[uuid.UUID, models.VariantRecord] = {}
    for batch in utils.buffer(sorted(set(blob_ids)), buffer_size=batch_size):
        with store_errors(db):
            records = (
                db.query(models.VariantRecord)
                .options(joinedload(models.VariantRecord.artifact))
                .filter(
                    and_(
                        models.VariantRecord.blob_id.in_(batch),
                        models.VariantRecord.variation_digest == digest,
                    )
                )
                .all()
            )
        for record in records:
            found[record.blob_id] = record
    return found


def _variant_record_insert(db: Session, record: models.VariantRecord):
    db.add(record)
    try:
        with store_errors(db):
            db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictRetry(str(e.orig)) from e


def variant_record_create_or_find(
    db: Session,
    blob: models.Blob,
    digest: str,
    create_fn: Callable[[], models.Blob],
) -> Tuple[models.VariantRecord, bool]:
    """
    Insert the artifact returned by `create_fn` together with its record.
    When another caller won the race for (blob, digest), return the winner's
    record instead.  The second value is True when this call created it.
    """
    blob_id = blob.id
    artifact = create_fn()
    record = models.VariantRecord(
        blob_id=blob_id, variation_digest=digest, artifact=artifact
    )
    try:
        _variant_record_insert(db, record)
    except ConflictRetry:
        logger.info("Lost variant race for blob %s digest %s", blob_id, digest)
        winner = variant_record_find(db, blob_id, digest)
        if winner is None:
            raise StoreUnavailable(
                f"Variant record for blob {blob_id} digest {digest} conflicted but is missing"
            )
        return winner, False
    return record, True


def variant_record_find_or_create(
    db: Session,
    blob: models.Blob,
    digest: str,
    create_fn: Callable[[], models.Blob],
) -> Tuple[models.VariantRecord, bool]:
    record = variant_record_find(db, blob.id, digest)
    if record is not None:
        return record, False
    return variant_record_create_or_find(db, blob, digest, create_fn)
