import logging

import click
from click_aliases import ClickAliasedGroup

from variantsio import database
from variantsio.settings import settings as default_settings
from variantsio.variants import VariantEngine

from . import blob, variant


@click.group(cls=ClickAliasedGroup)
@click.option("--database-uri", envvar="VIO_DATABASE_URI")
@click.option("-v", "--verbose", is_flag=True)
@click.version_option(package_name="variantsio")
@click.pass_context
def cli(ctx, database_uri, verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:\t%(name)s %(message)s",
    )
    obj = ctx.ensure_object(dict)
    conf = obj.setdefault("settings", default_settings)
    if "sessionmaker" not in obj:
        obj["sessionmaker"] = (
            database.make_sessionmaker(database.make_engine(database_uri))
            if database_uri
            else database.SessionLocal
        )
    if "variants" not in obj:
        obj["variants"] = VariantEngine.from_settings(conf)
    db = obj["sessionmaker"]()
    ctx.call_on_close(db.close)
    obj["db"] = db


blob.make(cli)
variant.make(cli)
