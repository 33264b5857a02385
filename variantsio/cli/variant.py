import logging
import uuid
from typing import Tuple

import click
from click_aliases import ClickAliasedGroup
from tqdm import tqdm

from variantsio import crud, utils
from variantsio.schemas import InvariableError, VariantError, VariantRecordDB
from variantsio.variation import DescriptorError

from .util import exit_with, parse_options

logger = logging.getLogger(__name__)

option_argument = click.option(
    "-o",
    "--option",
    "options",
    multiple=True,
    help="Variation option as name=value, e.g. -o resize=100x100",
)


def make(cli: click.Group):
    @cli.group(name="variant", cls=ClickAliasedGroup)
    def variant():
        pass

    @variant.command(name="derive", aliases=["process"])
    @click.argument("blob_id", type=click.UUID)
    @option_argument
    @click.option("--url/--no-url", "with_url", default=True)
    @click.pass_obj
    def derive(ctx, blob_id: uuid.UUID, options: Tuple[str], with_url: bool):
        engine = ctx["variants"]
        try:
            blob_db = crud.blob_get(ctx["db"], blob_id)
            handle = engine.derive(ctx["db"], blob_db, parse_options(options))
            resolved = handle.process()
            out = resolved.model_dump(mode="json")
            if with_url:
                out["url"] = handle.url()
        except (LookupError, DescriptorError, VariantError) as e:
            error = {"error": str(e), "type": type(e).__name__}
            detail = getattr(e, "detail", None)
            if detail:
                error["detail"] = detail
            exit_with(error)
        exit_with({"response": out})

    @variant.command(name="list", aliases=["ls"])
    @click.argument("blob_id", type=click.UUID)
    @click.pass_obj
    def list_variants(ctx, blob_id: uuid.UUID):
        try:
            records = crud.variant_record_search(ctx["db"], blob_id)
        except VariantError as e:
            exit_with({"error": str(e)})
        exit_with(
            {
                "response": [
                    VariantRecordDB.model_validate(r).model_dump(mode="json")
                    for r in records
                ]
            }
        )

    @variant.command(name="warm")
    @option_argument
    @click.option("--batch-size", type=click.INT, default=None)
    @click.pass_obj
    def warm(ctx, options: Tuple[str], batch_size):
        """Process one variation of every source blob, a batch at a time"""
        engine = ctx["variants"]
        db = ctx["db"]
        batch_size = batch_size or ctx["settings"].preload_batch_size
        descriptor = parse_options(options)
        counts = {"existing": 0, "created": 0, "invariable": 0, "failed": 0}
        try:
            variation = engine.describe(descriptor)
            blob_ids = crud.blob_source_ids(db)
            with tqdm(total=len(blob_ids), unit="blob", disable=None) as progress:
                for batch in utils.buffer(blob_ids, buffer_size=batch_size):
                    blobs = crud.blob_search(db, batch)
                    preloaded = engine.preload(db, blobs, variation)
                    for blob_db in blobs:
                        try:
                            resolved = engine.derive(
                                db, blob_db, variation, preloaded=preloaded
                            ).process()
                            counts["created" if resolved.created else "existing"] += 1
                        except InvariableError:
                            counts["invariable"] += 1
                        except VariantError as e:
                            logger.warning("Failed to process %s: %s", blob_db.id, e)
                            counts["failed"] += 1
                        progress.update(1)
        except (DescriptorError, VariantError) as e:
            exit_with({"error": str(e)})
        exit_with({"response": counts})
