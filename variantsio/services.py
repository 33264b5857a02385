"""
Storage services hold blob bytes under opaque keys.  A service is the
partition a blob lives on: variants are always written to the service of the
blob they were derived from.
"""
import abc
import io
import logging
import os
import pathlib
import secrets
from typing import Dict, Mapping, Optional

import minio.error
import urllib3

from . import s3utils, utils
from .schemas import ServiceNotConfigured, StoreUnavailable
from .settings import ServiceConfig, Settings

logger = logging.getLogger(__name__)

KEY_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def generate_key(length: int = 28) -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


class Service(abc.ABC):
    def __init__(self, name: str):
        self.name = name

    @abc.abstractmethod
    def upload(self, key: str, data: bytes, content_type: Optional[str] = None):
        ...

    @abc.abstractmethod
    def download(self, key: str) -> bytes:
        """Raises FileNotFoundError for unknown keys"""

    @abc.abstractmethod
    def delete(self, key: str):
        ...

    @abc.abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abc.abstractmethod
    def url(
        self,
        key: str,
        filename: str,
        content_type: Optional[str] = None,
        expires_in: int = 300,
    ) -> str:
        ...


class DiskService(Service):
    """Bytes in a directory tree, sharded by the first characters of the key"""

    def __init__(self, name: str, root: str, public_url: Optional[str] = None):
        super().__init__(name)
        self.root = pathlib.Path(root).expanduser()
        self.public_url = public_url

    def path_for(self, key: str) -> pathlib.Path:
        return self.root / key[0:2] / key[2:4] / key

    def upload(self, key: str, data: bytes, content_type: Optional[str] = None):
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(f".{path.name}.{secrets.token_hex(4)}")
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreUnavailable(f"Failed to write {key} to {self.name}: {e}") from e

    def download(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise FileNotFoundError(f"File not found: {self.name}/{key}")
        except OSError as e:
            raise StoreUnavailable(f"Failed to read {key} from {self.name}: {e}") from e

    def delete(self, key: str):
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"Failed to delete {key} from {self.name}: {e}") from e

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def url(
        self,
        key: str,
        filename: str,
        content_type: Optional[str] = None,
        expires_in: int = 300,
    ) -> str:
        args = {"disposition": "inline"}
        if content_type:
            args["content_type"] = content_type
        if self.public_url is None:
            return self.path_for(key).resolve().as_uri()
        return utils.build_url(
            self.public_url,
            path=f"/blobs/{self.name}/{key}/{filename}",
            args_dict=args,
        )


class S3Service(Service):
    """Bytes in a bucket on an S3 compatible node"""

    def __init__(
        self,
        name: str,
        config: ServiceConfig,
        client_cache: Optional[s3utils.Boto3ClientCache] = None,
    ):
        super().__init__(name)
        if not config.bucket or not config.api_url:
            raise ValueError(f"Service {name} requires a bucket and an api_url")
        self.config = config
        self.bucket = config.bucket
        self.client_cache = client_cache or s3utils.Boto3ClientCache()

    @property
    def client(self):
        return self.client_cache.get_minio_sdk_client(self.config)

    def upload(self, key: str, data: bytes, content_type: Optional[str] = None):
        try:
            self.client.put_object(
                self.bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type or "application/octet-stream",
            )
        except (minio.error.MinioException, urllib3.exceptions.HTTPError) as e:
            raise StoreUnavailable(f"Failed to write {key} to {self.name}: {e}") from e

    def download(self, key: str) -> bytes:
        try:
            response = self.client.get_object(self.bucket, key)
        except minio.error.S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject"):
                raise FileNotFoundError(f"File not found: {self.name}/{key}")
            raise StoreUnavailable(f"Failed to read {key} from {self.name}: {e}") from e
        except (minio.error.MinioException, urllib3.exceptions.HTTPError) as e:
            raise StoreUnavailable(f"Failed to read {key} from {self.name}: {e}") from e
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def delete(self, key: str):
        try:
            self.client.remove_object(self.bucket, key)
        except (minio.error.MinioException, urllib3.exceptions.HTTPError) as e:
            raise StoreUnavailable(f"Failed to delete {key} from {self.name}: {e}") from e

    def exists(self, key: str) -> bool:
        try:
            self.client.stat_object(self.bucket, key)
        except minio.error.S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject"):
                return False
            raise StoreUnavailable(f"Failed to stat {key} on {self.name}: {e}") from e
        except (minio.error.MinioException, urllib3.exceptions.HTTPError) as e:
            raise StoreUnavailable(f"Failed to stat {key} on {self.name}: {e}") from e
        return True

    def url(
        self,
        key: str,
        filename: str,
        content_type: Optional[str] = None,
        expires_in: int = 300,
    ) -> str:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "ResponseContentDisposition": s3utils.content_disposition(filename),
        }
        if content_type:
            params["ResponseContentType"] = content_type
        return self.client_cache.get_client(self.config).generate_presigned_url(
            "get_object", Params=params, ExpiresIn=expires_in
        )


def build_service(
    name: str,
    config: ServiceConfig,
    client_cache: Optional[s3utils.Boto3ClientCache] = None,
    public_name: Optional[str] = None,
) -> Service:
    if config.service == "disk":
        if not config.root:
            raise ValueError(f"Service {name} requires a root directory")
        return DiskService(name, config.root, public_url=config.public_url or public_name)
    if config.service == "s3":
        return S3Service(name, config, client_cache=client_cache)
    raise ValueError(f"Unsupported service {config.service!r} for {name}")


class ByteStore:
    """The set of configured services, addressed by service name"""

    def __init__(self, services: Mapping[str, Service]):
        self.services: Dict[str, Service] = dict(services)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ByteStore":
        client_cache = s3utils.Boto3ClientCache()
        return cls(
            {
                name: build_service(
                    name, config, client_cache=client_cache, public_name=settings.public_name
                )
                for name, config in settings.services.items()
            }
        )

    def service(self, service_name: str) -> Service:
        try:
            return self.services[service_name]
        except KeyError:
            raise ServiceNotConfigured(
                f"Missing configuration for service {service_name!r}"
            ) from None

    def put(self, service_name: str, data: bytes, content_type: Optional[str] = None) -> str:
        key = generate_key()
        self.put_at(service_name, key, data, content_type)
        return key

    def put_at(
        self, service_name: str, key: str, data: bytes, content_type: Optional[str] = None
    ):
        self.service(service_name).upload(key, data, content_type)
        logger.debug("Uploaded %s bytes to %s/%s", len(data), service_name, key)

    def get(self, service_name: str, key: str) -> bytes:
        return self.service(service_name).download(key)

    def delete(self, service_name: str, key: str):
        self.service(service_name).delete(key)

    def exists(self, service_name: str, key: str) -> bool:
        return self.service(service_name).exists(key)

    def url(
        self,
        service_name: str,
        key: str,
        filename: str,
        content_type: Optional[str] = None,
        expires_in: int = 300,
    ) -> str:
        return self.service(service_name).url(
            key, filename, content_type=content_type, expires_in=expires_in
        )
