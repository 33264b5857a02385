import os
import uuid

import click
from click_aliases import ClickAliasedGroup

from variantsio import crud
from variantsio.schemas import BlobDB, VariantError

from .util import exit_with


def make(cli: click.Group):
    @cli.group(name="blob", cls=ClickAliasedGroup)
    def blob():
        pass

    @blob.command(name="upload", aliases=["up"])
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--service", default=None, help="Storage service name")
    @click.option("--content-type", default=None)
    @click.option("--analyze/--no-analyze", default=True)
    @click.pass_obj
    def upload(ctx, path, service, content_type, analyze):
        with open(path, "rb") as f:
            data = f.read()
        try:
            blob_db = crud.blob_create(
                ctx["db"],
                ctx["variants"].byte_store,
                data,
                os.path.basename(path),
                content_type=content_type,
                service_name=service or ctx["settings"].default_service,
                analyze=analyze,
            )
        except VariantError as e:
            exit_with({"error": str(e)})
        exit_with({"response": BlobDB.model_validate(blob_db).model_dump(mode="json")})

    @blob.command(name="show", aliases=["get"])
    @click.argument("blob_id", type=click.UUID)
    @click.pass_obj
    def show(ctx, blob_id: uuid.UUID):
        try:
            blob_db = crud.blob_get(ctx["db"], blob_id)
        except (LookupError, VariantError) as e:
            exit_with({"error": str(e)})
        exit_with({"response": BlobDB.model_validate(blob_db).model_dump(mode="json")})

    @blob.command(name="purge", aliases=["rm"])
    @click.argument("blob_id", type=click.UUID)
    @click.pass_obj
    def purge(ctx, blob_id: uuid.UUID):
        try:
            blob_db = crud.blob_get(ctx["db"], blob_id)
            purged = crud.blob_purge(ctx["db"], ctx["variants"].byte_store, blob_db)
        except (LookupError, VariantError) as e:
            exit_with({"error": str(e)})
        exit_with({"response": {"purged": [str(blob_id) for blob_id in purged]}})
