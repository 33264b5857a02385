import os
from typing import Dict, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseModel):
    """
    A storage service (partition) that blob bytes can live on.

    :param service: `disk` stores bytes below `root` on the local filesystem,
        `s3` stores them in `bucket` on an S3 compatible node.
    """

    service: str = "disk"
    root: Optional[str] = None
    public_url: Optional[str] = None
    # s3 only
    bucket: Optional[str] = None
    api_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region_name: str = "us-east-1"


class Settings(BaseSettings):
    public_name: str = "http://localhost:8100"
    database_uri: str = "postgresql:///vio"

    services: Dict[str, ServiceConfig] = {
        "local": ServiceConfig(service="disk", root="./storage"),
    }
    default_service: str = "local"

    track_variants: bool = True
    strict_variations: bool = False
    preload_batch_size: int = 1000
    reclaim_orphaned_artifacts: bool = True
    video_transformer: bool = True
    url_expires_in: int = 300

    model_config = SettingsConfigDict(
        env_prefix="vio_",
        env_file=os.getenv("DOTENV_PATH", ".env"),
        extra="ignore",
    )


settings = Settings()
