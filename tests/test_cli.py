import json
import uuid

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine, inspect

from conftest import make_image
from variantsio import dev_cli
from variantsio.cli import cli
from variantsio.settings import Settings


@pytest.fixture
def invoke(session_factory, variants):
    runner = CliRunner()
    conf = Settings(default_service="local", preload_batch_size=2)

    def run(*args):
        obj = {"settings": conf, "sessionmaker": session_factory, "variants": variants}
        result = runner.invoke(cli, list(args), obj=obj)
        return result, json.loads(result.output) if result.output.startswith("{") else None

    return run


@pytest.fixture
def upload(invoke, tmp_path):
    def run(filename="racecar.jpg", data=None):
        path = tmp_path / filename
        path.write_bytes(make_image() if data is None else data)
        result, out = invoke("blob", "upload", str(path))
        assert result.exit_code == 0, result.output
        return out["response"]

    return run


def test_upload_and_show(invoke, upload):
    blob = upload()
    assert blob["filename"] == "racecar.jpg"
    assert blob["content_type"] == "image/jpeg"
    assert blob["service_name"] == "local"
    assert blob["blob_metadata"]["width"] == 600

    result, out = invoke("blob", "get", blob["id"])
    assert result.exit_code == 0
    assert out["response"]["key"] == blob["key"]


def test_show_missing_blob(invoke):
    result, out = invoke("blob", "show", str(uuid.uuid4()))
    assert result.exit_code == 1
    assert "error" in out


def test_derive_and_list(invoke, upload):
    blob = upload()
    result, out = invoke("variant", "derive", blob["id"], "-o", "resize=100x100")
    assert result.exit_code == 0, result.output
    variant = out["response"]
    assert variant["created"]
    assert variant["blob_id"] == blob["id"]
    assert variant["filename"] == "racecar.jpg"
    assert "racecar.jpg" in variant["url"]

    result, out = invoke("variant", "process", blob["id"], "-o", "resize=100x100", "--no-url")
    assert result.exit_code == 0
    assert not out["response"]["created"]
    assert out["response"]["artifact_id"] == variant["artifact_id"]
    assert "url" not in out["response"]

    result, out = invoke("variant", "ls", blob["id"])
    assert result.exit_code == 0
    assert [r["artifact_id"] for r in out["response"]] == [variant["artifact_id"]]


def test_derive_errors(invoke, upload):
    text = upload(filename="notes.txt", data=b"hello")
    result, out = invoke("variant", "derive", text["id"], "-o", "resize=100x100")
    assert result.exit_code == 1
    assert out["type"] == "InvariableError"

    image = upload()
    result, out = invoke("variant", "derive", image["id"], "-o", "resize=wide")
    assert result.exit_code == 1
    assert out["type"] == "TransformationError"

    result, _ = invoke("variant", "derive", image["id"], "-o", "resize")
    assert result.exit_code == 2


def test_warm(invoke, upload, transformer):
    blobs = [upload() for _ in range(3)]
    upload(filename="notes.txt", data=b"hello")
    invoke("variant", "derive", blobs[0]["id"], "-o", "resize=100x100")

    result, out = invoke("variant", "warm", "-o", "resize=100x100")
    assert result.exit_code == 0, result.output
    assert out["response"] == {"existing": 1, "created": 2, "invariable": 1, "failed": 0}
    assert transformer.calls == 3

    result, out = invoke("variant", "warm", "-o", "resize=100x100", "--batch-size", "10")
    assert out["response"] == {"existing": 3, "created": 0, "invariable": 1, "failed": 0}


def test_purge(invoke, upload, storage_root):
    blob = upload()
    invoke("variant", "derive", blob["id"], "-o", "resize=100x100")

    result, out = invoke("blob", "rm", blob["id"])
    assert result.exit_code == 0
    assert len(out["response"]["purged"]) == 2
    assert blob["id"] in out["response"]["purged"]
    assert [p for p in storage_root.rglob("*") if p.is_file()] == []

    result, _ = invoke("blob", "show", blob["id"])
    assert result.exit_code == 1


def test_create_tables(tmp_path):
    uri = f"sqlite:///{tmp_path / 'fresh.db'}"
    result = CliRunner().invoke(dev_cli.main, ["--database-uri", uri])
    assert result.exit_code == 0, result.output
    assert "variant_record" in result.output
    assert set(inspect(create_engine(uri)).get_table_names()) == {"blob", "variant_record"}

    result = CliRunner().invoke(dev_cli.main, ["--database-uri", uri, "--drop"])
    assert result.exit_code == 0
