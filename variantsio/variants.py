"""
Variants are blobs deterministically derived from other blobs: thumbnails,
transcoded media, etc.

They're costly enough to compute that each (blob, variation) pair is generated
at most once and tracked in the variant_record table.  The unique index on
that table is the only coordination between concurrent derivations, so no
lock is ever held while transforming.
"""
import logging
import posixpath
from typing import Any, Mapping, Optional, Union

from sqlalchemy.orm import Session

from . import analyzers, crud, models, utils
from .preload import BatchPreloader, PreloadedVariants
from .schemas import (
    ResolvedArtifact,
    StoreUnavailable,
    TransformationError,
    VariantError,
    VariantNotProcessed,
    VariantState,
)
from .services import ByteStore
from .settings import Settings
from .transformers import TransformerRegistry, default_registry
from .variation import Variation

logger = logging.getLogger(__name__)

Descriptor = Union[Variation, Mapping[str, Any], str]


def variant_filename(blob: models.Blob, content_type: str) -> str:
    return f"{blob.basename}.{utils.extension_for(content_type)}"


class VariantHandle:
    """
    A lazy reference to the variant of `blob`.  Building one does no I/O;
    `process` runs the derivation.
    """

    def __init__(
        self,
        engine: "VariantEngine",
        db: Session,
        blob: models.Blob,
        variation: Variation,
        preloaded: Optional[PreloadedVariants] = None,
    ):
        self.engine = engine
        self.db = db
        self.blob = blob
        self.variation = variation
        self.preloaded = preloaded
        self.state = VariantState.REQUESTED
        self.record: Optional[models.VariantRecord] = None
        self.resolved: Optional[ResolvedArtifact] = None
        self.error: Optional[VariantError] = None

    def describe(self) -> Variation:
        return self.variation

    def process(self) -> ResolvedArtifact:
        if self.resolved is None:
            self.engine.resolve(self)
        return self.resolved

    @property
    def processed(self) -> "VariantHandle":
        self.process()
        return self

    @property
    def reference(self) -> ResolvedArtifact:
        if self.resolved is None:
            raise VariantNotProcessed(
                f"Variant {self.variation.digest} of blob {self.blob.id} has not been processed"
            )
        return self.resolved

    @property
    def artifact(self) -> Optional[models.Blob]:
        return self.record.artifact if self.record is not None else None

    @property
    def key(self) -> str:
        return self.reference.key

    @property
    def filename(self) -> str:
        return self.reference.filename

    @property
    def content_type(self) -> Optional[str]:
        return self.reference.content_type

    def url(self, expires_in: Optional[int] = None) -> str:
        ref = self.reference
        return self.engine.byte_store.url(
            ref.service_name,
            ref.key,
            ref.filename,
            content_type=ref.content_type,
            expires_in=expires_in or self.engine.url_expires_in,
        )

    def download(self) -> bytes:
        ref = self.reference
        return self.engine.byte_store.get(ref.service_name, ref.key)

    def transition(self, state: VariantState):
        logger.debug(
            "Variant %s of blob %s: %s -> %s",
            self.variation.digest[:12],
            self.blob.id,
            self.state.value,
            state.value,
        )
        self.state = state

    def __repr__(self) -> str:
        return f"<VariantHandle(blob={self.blob.id}, variation={self.variation}, state={self.state.value})>"


class VariantEngine:
    """
    Derives variants of blobs.

    :param registry: transformers consulted in order.  Replace the attribute to
        change them; derivations past backend selection keep the registry they
        started with.
    :param track_variants: record each generated variant in the database.
        Untracked variants live at a key derived from the source key and
        digest, and the byte store is asked whether they exist.
    :param reclaim_orphans: delete the bytes of an artifact that lost a
        creation race instead of leaving them unreferenced.
    """

    def __init__(
        self,
        byte_store: ByteStore,
        registry: Optional[TransformerRegistry] = None,
        strict: bool = False,
        track_variants: bool = True,
        reclaim_orphans: bool = True,
        preload_batch_size: int = 1000,
        url_expires_in: int = 300,
    ):
        self.byte_store = byte_store
        self.registry = registry if registry is not None else TransformerRegistry()
        self.strict = strict
        self.track_variants = track_variants
        self.reclaim_orphans = reclaim_orphans
        self.preloader = BatchPreloader(batch_size=preload_batch_size)
        self.url_expires_in = url_expires_in

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        byte_store: Optional[ByteStore] = None,
        registry: Optional[TransformerRegistry] = None,
    ) -> "VariantEngine":
        return cls(
            byte_store or ByteStore.from_settings(settings),
            registry=registry if registry is not None else default_registry(settings),
            strict=settings.strict_variations,
            track_variants=settings.track_variants,
            reclaim_orphans=settings.reclaim_orphaned_artifacts,
            preload_batch_size=settings.preload_batch_size,
            url_expires_in=settings.url_expires_in,
        )

    def describe(self, descriptor: Descriptor) -> Variation:
        return Variation.wrap(descriptor, strict=self.strict)

    def derive(
        self,
        db: Session,
        blob: models.Blob,
        descriptor: Descriptor,
        preloaded: Optional[PreloadedVariants] = None,
    ) -> VariantHandle:
        return VariantHandle(self, db, blob, self.describe(descriptor), preloaded=preloaded)

    def preload(
        self, db: Session, blobs, descriptor: Descriptor
    ) -> PreloadedVariants:
        return self.preloader.preload(db, blobs, self.describe(descriptor))

    def resolve(self, handle: VariantHandle) -> ResolvedArtifact:
        handle.error = None
        handle.transition(VariantState.DIGEST_COMPUTED)
        try:
            if self.track_variants:
                resolved = self._resolve_tracked(handle)
            else:
                resolved = self._resolve_untracked(handle)
        except VariantError as e:
            handle.error = e
            handle.transition(VariantState.FAILED)
            raise
        handle.resolved = resolved
        handle.transition(VariantState.RESOLVED)
        return resolved

    def _lookup(self, handle: VariantHandle) -> Optional[models.VariantRecord]:
        blob_id, digest = handle.blob.id, handle.variation.digest
        if handle.preloaded is not None and handle.preloaded.knows(blob_id, digest):
            record = handle.preloaded[blob_id]
            # a preloaded miss may have been resolved since
            if record is not None:
                return record
        return crud.variant_record_find(handle.db, blob_id, digest)

    def _resolve_tracked(self, handle: VariantHandle) -> ResolvedArtifact:
        blob = handle.blob
        blob_id, service_name = blob.id, blob.service_name
        record = self._lookup(handle)
        if record is not None:
            handle.transition(VariantState.HIT)
            handle.record = record
            return self._reference(blob_id, record, created=False)

        handle.transition(VariantState.MISS)
        uploaded = []

        def create() -> models.Blob:
            data, content_type = self._transform(handle)
            handle.transition(VariantState.PERSISTING)
            key = self.byte_store.put(service_name, data, content_type)
            uploaded.append(key)
            return crud.blob_build(
                data,
                variant_filename(blob, content_type),
                key=key,
                service_name=service_name,
                content_type=content_type,
                metadata=analyzers.analyze(data, content_type),
            )

        record, created = crud.variant_record_create_or_find(
            handle.db, blob, handle.variation.digest, create
        )
        if created:
            logger.info(
                "Created variant %s of blob %s", handle.variation.digest[:12], blob_id
            )
        else:
            self._reclaim(service_name, uploaded)
        handle.record = record
        return self._reference(blob_id, record, created=created)

    def _resolve_untracked(self, handle: VariantHandle) -> ResolvedArtifact:
        blob = handle.blob
        service_name = blob.service_name
        key = posixpath.join("variants", blob.key, handle.variation.digest)
        registry = self.registry
        created = False
        if self.byte_store.exists(service_name, key):
            handle.transition(VariantState.HIT)
            content_type = self._expected_content_type(registry, blob, handle.variation)
        else:
            handle.transition(VariantState.MISS)
            transformer = registry.select(self._content_type(blob))
            data, content_type = self._transform(handle, transformer)
            handle.transition(VariantState.PERSISTING)
            self.byte_store.put_at(service_name, key, data, content_type)
            created = True
        return ResolvedArtifact(
            blob_id=blob.id,
            variation_digest=handle.variation.digest,
            service_name=service_name,
            key=key,
            filename=variant_filename(blob, content_type),
            content_type=content_type,
            created=created,
        )

    @staticmethod
    def _content_type(blob: models.Blob) -> str:
        return utils.guess_content_type(blob.filename, blob.content_type)

    def _expected_content_type(
        self, registry: TransformerRegistry, blob: models.Blob, variation: Variation
    ) -> str:
        """Content type of an untracked variant that already exists"""
        content_type = self._content_type(blob)
        if registry.supports(content_type):
            return registry.select(content_type).output_content_type(content_type, variation)
        if variation.format:
            return utils.guess_content_type(f"variant.{variation.format}")
        return content_type

    def _transform(self, handle: VariantHandle, transformer=None):
        blob = handle.blob
        content_type = self._content_type(blob)
        if transformer is None:
            # read the registry once; later replacements don't affect this derivation
            registry = self.registry
            transformer = registry.select(content_type)
        handle.transition(VariantState.TRANSFORMING)
        try:
            data = self.byte_store.get(blob.service_name, blob.key)
        except FileNotFoundError as e:
            raise StoreUnavailable(str(e)) from e
        try:
            result = transformer.transform(data, content_type, handle.variation)
        except VariantError:
            raise
        except Exception as e:
            raise TransformationError(
                f"{transformer.name} failed on blob {blob.id}", detail=repr(e)
            ) from e
        return result.data, result.content_type

    def _reclaim(self, service_name: str, keys):
        for key in keys:
            if not self.reclaim_orphans:
                logger.info("Leaving orphaned artifact %s/%s", service_name, key)
                continue
            try:
                self.byte_store.delete(service_name, key)
            except StoreUnavailable as e:
                logger.warning("Failed to reclaim %s/%s: %s", service_name, key, e)

    @staticmethod
    def _reference(blob_id, record: models.VariantRecord, created: bool) -> ResolvedArtifact:
        artifact = record.artifact
        return ResolvedArtifact(
            blob_id=blob_id,
            variation_digest=record.variation_digest,
            service_name=artifact.service_name,
            key=artifact.key,
            filename=artifact.filename,
            content_type=artifact.content_type,
            byte_size=artifact.byte_size,
            record_id=record.id,
            artifact_id=artifact.id,
            created=created,
        )
