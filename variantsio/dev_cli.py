import click

# Import for table registration side-effect
from . import database, models


@click.command()
@click.option("--database-uri", envvar="VIO_DATABASE_URI")
@click.option("--drop", is_flag=True, help="Drop blob and variant tables first")
def main(database_uri, drop):
    """Create the blob and variant_record tables"""
    engine = database.make_engine(database_uri) if database_uri else database.engine
    if drop:
        database.Base.metadata.drop_all(engine)
    database.Base.metadata.create_all(engine)
    click.echo(f"Created {', '.join(sorted(database.Base.metadata.tables))}")
