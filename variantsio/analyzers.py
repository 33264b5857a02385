"""
Extract metadata from blob bytes
"""
import io
import logging
import os
import tempfile
from typing import Any, Dict

import ffmpeg
from PIL import Image, UnidentifiedImageError

from . import utils

logger = logging.getLogger(__name__)


class ProducerError(RuntimeError):
    pass


def probe_image(data: bytes) -> Dict[str, Any]:
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError) as e:
        raise ProducerError(e)
    return {"width": width, "height": height}


def probe_video(data: bytes, content_type: str) -> Dict[str, Any]:
    with tempfile.TemporaryDirectory(prefix="variantsio-") as workdir:
        path = os.path.join(workdir, f"probe.{utils.extension_for(content_type)}")
        with open(path, "wb") as f:
            f.write(data)
        try:
            probe = ffmpeg.probe(path)
        except (ffmpeg.Error, OSError) as e:
            raise ProducerError(e)

    metadata: Dict[str, Any] = {}
    video_streams = [s for s in probe["streams"] if s.get("codec_type") == "video"]
    if len(video_streams):
        streams = video_streams[0]
        metadata["width"] = streams.get("width")
        metadata["height"] = streams.get("height")
        metadata["r_frame_rate"] = streams.get("r_frame_rate")
        metadata["codec_tag_string"] = streams.get("codec_tag_string")
    metadata["audio"] = any(s.get("codec_type") == "audio" for s in probe["streams"])
    try:
        metadata["duration"] = float(probe["format"]["duration"])
    except (KeyError, ValueError):
        metadata["duration"] = None
    metadata["format_name"] = probe["format"].get("format_name")
    return metadata


def analyze(data: bytes, content_type: str) -> Dict[str, Any]:
    """Produce what metadata the content type supports; never raises for bad content"""
    metadata: Dict[str, Any] = {"analyzed": True}
    try:
        if content_type.startswith("image/"):
            metadata.update(probe_image(data))
        elif content_type.startswith("video/"):
            metadata.update(probe_video(data, content_type))
    except ProducerError as e:
        logger.warning("Failed to analyze %s content: %s", content_type, e)
    return metadata
