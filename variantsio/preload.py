"""
Warm the variant records of many blobs sharing one variation with a single
query, so resolving each of them afterwards costs no further lookups.
"""
import logging
import uuid
from typing import Dict, Iterable, Iterator, Mapping, Optional

from sqlalchemy.orm import Session

from . import crud, models
from .variation import Variation

logger = logging.getLogger(__name__)


class PreloadedVariants(Mapping[uuid.UUID, Optional[models.VariantRecord]]):
    """
    blob id -> variant record, or None when the variant has not been
    generated yet.  Blobs that were not part of the preload raise KeyError.
    """

    def __init__(
        self,
        variation: Variation,
        blob_ids: Iterable[uuid.UUID],
        records: Mapping[uuid.UUID, models.VariantRecord],
    ):
        self.variation = variation
        self._records: Dict[uuid.UUID, Optional[models.VariantRecord]] = {
            blob_id: records.get(blob_id) for blob_id in blob_ids
        }

    def knows(self, blob_id: uuid.UUID, digest: str) -> bool:
        return digest == self.variation.digest and blob_id in self._records

    def __getitem__(self, blob_id: uuid.UUID) -> Optional[models.VariantRecord]:
        return self._records[blob_id]

    def __iter__(self) -> Iterator[uuid.UUID]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def misses(self):
        return [blob_id for blob_id, record in self._records.items() if record is None]


class BatchPreloader:
    def __init__(self, batch_size: int = 1000):
        self.batch_size = batch_size

    def preload(
        self, db: Session, blobs: Iterable[models.Blob], variation: Variation
    ) -> PreloadedVariants:
        """Never transforms: misses stay misses until they are processed"""
        blob_ids = [b.id for b in blobs]
        records = crud.variant_record_find_all(
            db, blob_ids, variation.digest, batch_size=self.batch_size
        )
        logger.debug(
            "Preloaded %s of %s variants for %s", len(records), len(blob_ids), variation
        )
        return PreloadedVariants(variation, blob_ids, records)
