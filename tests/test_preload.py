import uuid

import pytest

from variantsio import crud, models
from variantsio.preload import BatchPreloader, PreloadedVariants
from variantsio.variants import VariantEngine
from variantsio.variation import Variation

RESIZE = {"resize": "100x100"}


@pytest.fixture
def processed_blobs(db, variants, create_file_blob):
    def create(count):
        blobs = [create_file_blob() for _ in range(count)]
        for blob in blobs:
            variants.derive(db, blob, RESIZE).process()
        return [blob.id for blob in blobs]

    return create


@pytest.mark.parametrize("count", [1, 3, 8])
def test_preloaded_query_count_is_constant(
    db, variants, processed_blobs, count_queries, transformer, count
):
    blob_ids = processed_blobs(count)

    with count_queries() as statements:
        blobs = crud.blob_search(db, blob_ids)
        preloaded = variants.preload(db, blobs, RESIZE)
        refs = [
            variants.derive(db, blob, RESIZE, preloaded=preloaded).process()
            for blob in blobs
        ]
    assert len(statements) == 2
    assert len(refs) == count
    assert not any(r.created for r in refs)
    assert transformer.calls == count


@pytest.mark.parametrize("count", [1, 3, 8])
def test_unpreloaded_query_count_grows(db, variants, processed_blobs, count_queries, count):
    blob_ids = processed_blobs(count)

    with count_queries() as statements:
        blobs = crud.blob_search(db, blob_ids)
        for blob in blobs:
            variants.derive(db, blob, RESIZE).process()
    assert len(statements) == count + 1


def test_preload_batches(db, byte_store, registry, processed_blobs, count_queries):
    blob_ids = processed_blobs(5)
    engine = VariantEngine(byte_store, registry, preload_batch_size=2)
    blobs = crud.blob_search(db, blob_ids)
    with count_queries() as statements:
        preloaded = engine.preload(db, blobs, RESIZE)
    assert len(statements) == 3
    assert len(preloaded) == 5
    assert preloaded.misses == []


def test_preload_never_transforms(db, variants, create_file_blob, transformer):
    blobs = [create_file_blob() for _ in range(3)]
    preloaded = variants.preload(db, blobs, RESIZE)
    assert transformer.calls == 0
    assert len(preloaded) == 3
    assert set(preloaded.misses) == {b.id for b in blobs}
    assert all(preloaded[b.id] is None for b in blobs)
    assert db.query(models.VariantRecord).count() == 0


def test_preloaded_miss_is_created_on_process(
    db, variants, create_file_blob, transformer, count_queries
):
    done, pending = create_file_blob(), create_file_blob()
    variants.derive(db, done, RESIZE).process()
    preloaded = variants.preload(db, [done, pending], RESIZE)
    assert preloaded.misses == [pending.id]

    ref = variants.derive(db, pending, RESIZE, preloaded=preloaded).process()
    assert ref.created
    assert transformer.calls == 2
    assert crud.variant_record_find(db, pending.id, Variation(RESIZE).digest) is not None


def test_preload_only_answers_for_its_blobs_and_variation(db, variants, create_file_blob):
    blob, other = create_file_blob(), create_file_blob()
    variants.derive(db, other, RESIZE).process()
    preloaded = variants.preload(db, [blob], RESIZE)
    digest = Variation(RESIZE).digest

    assert preloaded.knows(blob.id, digest)
    assert not preloaded.knows(blob.id, Variation({"resize": "50x50"}).digest)
    assert not preloaded.knows(other.id, digest)
    with pytest.raises(KeyError):
        preloaded[other.id]
    with pytest.raises(KeyError):
        preloaded[uuid.uuid4()]

    # blobs outside the preload fall back to a lookup
    ref = variants.derive(db, other, RESIZE, preloaded=preloaded).process()
    assert not ref.created


def test_preloaded_variants_mapping():
    variation = Variation(RESIZE)
    ids = [uuid.uuid4(), uuid.uuid4()]
    record = models.VariantRecord(blob_id=ids[0], variation_digest=variation.digest)
    preloaded = PreloadedVariants(variation, ids, {ids[0]: record})
    assert list(preloaded) == ids
    assert dict(preloaded) == {ids[0]: record, ids[1]: None}
    assert preloaded.misses == [ids[1]]


def test_batch_preloader_of_nothing(db, count_queries):
    with count_queries() as statements:
        preloaded = BatchPreloader().preload(db, [], Variation(RESIZE))
    assert statements == []
    assert len(preloaded) == 0


def test_stale_preloaded_miss_reuses_the_stored_variant(
    db, variants, create_file_blob, transformer
):
    blob = create_file_blob()
    preloaded = variants.preload(db, [blob], RESIZE)
    assert preloaded.misses == [blob.id]

    first = variants.derive(db, blob, RESIZE, preloaded=preloaded).process()
    second = variants.derive(db, blob, RESIZE, preloaded=preloaded).process()
    assert first.created
    assert not second.created
    assert second.artifact_id == first.artifact_id
    assert transformer.calls == 1
    assert db.query(models.VariantRecord).count() == 1
