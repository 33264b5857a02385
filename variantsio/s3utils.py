"""
Helper functions for working with S3 compatible storage nodes
"""
import hashlib
import urllib.parse
from typing import Dict, Union

import boto3
import minio
from botocore.client import Config

from .settings import ServiceConfig


class Boto3ClientCache:
    """
    There may be many s3 services configured.  Once a client has been established,
    cache it for future use.
    """

    def __init__(self):
        self.cache: Dict[str, Union[minio.Minio, object]] = {}

    @staticmethod
    def _get_primary_key(client_type: str, config: ServiceConfig) -> str:
        if not client_type in ["s3", "minio"]:
            raise ValueError(f"{client_type} unsupported by cache")
        primary_key = (
            (
                f"{client_type}{config.region_name}{config.api_url}"
                f"{config.access_key_id}{config.secret_access_key}"
            )
            .lower()
            .encode("utf-8")
        )
        return hashlib.sha256(primary_key).hexdigest()

    def get_client(self, config: ServiceConfig):
        primary_key_short_sha256 = Boto3ClientCache._get_primary_key("s3", config)
        client = self.cache.get(primary_key_short_sha256, None)
        if client is None:
            client = boto3.client(
                "s3",
                region_name=config.region_name,
                endpoint_url=config.api_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                config=Config(signature_version="s3v4"),
            )
            self.cache[primary_key_short_sha256] = client
        return client

    def get_minio_sdk_client(self, config: ServiceConfig) -> minio.Minio:
        primary_key_short_sha256 = Boto3ClientCache._get_primary_key("minio", config)
        client = self.cache.get(primary_key_short_sha256, None)
        if client is None:
            url = urllib.parse.urlparse(config.api_url)
            client = minio.Minio(
                url.netloc,
                access_key=config.access_key_id,
                secret_key=config.secret_access_key,
                region=config.region_name,
                secure=url.scheme == "https",
            )
            self.cache[primary_key_short_sha256] = client
        return client


def content_disposition(filename: str, disposition: str = "inline") -> str:
    quoted = urllib.parse.quote(filename)
    return f"{disposition}; filename=\"{quoted}\"; filename*=UTF-8''{quoted}"
