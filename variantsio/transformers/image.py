import io
import re
from typing import Any, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from variantsio.schemas import TransformationError
from variantsio.variation import Variation

from .base import TransformResult, Transformer

VARIABLE_CONTENT_TYPES = {
    "image/bmp",
    "image/gif",
    "image/jpeg",
    "image/jpg",
    "image/pjpeg",
    "image/png",
    "image/tiff",
    "image/webp",
}

# formats served as-is; anything else is converted to png
WEB_IMAGE_CONTENT_TYPES = {"image/gif", "image/jpeg", "image/png", "image/webp"}

FORMATS = {
    "gif": ("GIF", "image/gif"),
    "jpeg": ("JPEG", "image/jpeg"),
    "jpg": ("JPEG", "image/jpeg"),
    "png": ("PNG", "image/png"),
    "webp": ("WEBP", "image/webp"),
    "bmp": ("BMP", "image/bmp"),
    "tiff": ("TIFF", "image/tiff"),
}

CONTENT_TYPE_FORMATS = {
    "image/gif": "gif",
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
}

GEOMETRY = re.compile(r"^(\d*)x(\d*)$")

OPERATIONS = (
    "crop",
    "resize",
    "resize_to_limit",
    "resize_to_fit",
    "resize_to_fill",
    "rotate",
)


def _dimensions(name: str, value: Any) -> Tuple[Optional[int], Optional[int]]:
    if isinstance(value, str):
        match = GEOMETRY.match(value.strip())
        if match is None or not any(match.groups()):
            raise TransformationError(f"Invalid geometry for {name}: {value!r}")
        return tuple(int(v) if v else None for v in match.groups())
    if isinstance(value, list) and len(value) == 2:
        try:
            return tuple(int(v) if v is not None else None for v in value)
        except (TypeError, ValueError):
            pass
    raise TransformationError(f"Invalid dimensions for {name}: {value!r}")


def _fit_size(
    size: Tuple[int, int], box: Tuple[Optional[int], Optional[int]], enlarge: bool = True
) -> Tuple[int, int]:
    width, height = size
    scales = []
    if box[0]:
        scales.append(box[0] / width)
    if box[1]:
        scales.append(box[1] / height)
    scale = min(scales)
    if scale >= 1 and not enlarge:
        return size
    return max(1, round(width * scale)), max(1, round(height * scale))


class ImageTransformer(Transformer):
    """Pillow backed image variations"""

    name = "image"

    def supports(self, content_type: str) -> bool:
        return content_type in VARIABLE_CONTENT_TYPES

    def output_format(self, content_type: str, variation: Variation) -> Tuple[str, str]:
        fmt = variation.format
        if fmt is None:
            if content_type in WEB_IMAGE_CONTENT_TYPES:
                fmt = CONTENT_TYPE_FORMATS[content_type]
            else:
                fmt = "png"
        if fmt not in FORMATS:
            raise TransformationError(f"Unsupported image format {fmt}")
        return FORMATS[fmt]

    def output_content_type(self, content_type: str, variation: Variation) -> str:
        return self.output_format(content_type, variation)[1]

    def apply(self, image: Image.Image, operation: str, value: Any) -> Image.Image:
        resample = Image.Resampling.LANCZOS
        if operation == "crop":
            if (
                not isinstance(value, list)
                or len(value) != 4
                or not all(isinstance(v, int) for v in value)
            ):
                raise TransformationError(f"crop expects [left, top, width, height], got {value!r}")
            left, top, width, height = value
            return image.crop((left, top, left + width, top + height))
        if operation in ("resize", "resize_to_fit"):
            return image.resize(_fit_size(image.size, _dimensions(operation, value)), resample)
        if operation == "resize_to_limit":
            size = _fit_size(image.size, _dimensions(operation, value), enlarge=False)
            return image if size == image.size else image.resize(size, resample)
        if operation == "resize_to_fill":
            width, height = _dimensions(operation, value)
            if not width or not height:
                raise TransformationError("resize_to_fill needs both a width and a height")
            return ImageOps.fit(image, (width, height), method=resample)
        if operation == "rotate":
            try:
                degrees = float(value)
            except (TypeError, ValueError):
                raise TransformationError(f"Invalid rotation {value!r}")
            return image.rotate(-degrees, expand=True)
        raise TransformationError(f"Unsupported image operation {operation}")

    def transform(
        self, data: bytes, content_type: str, variation: Variation
    ) -> TransformResult:
        unknown = set(variation.options) - set(OPERATIONS) - {"format", "quality"}
        if unknown:
            raise TransformationError(
                f"Unsupported image operations: {', '.join(sorted(unknown))}"
            )
        pil_format, output_content_type = self.output_format(content_type, variation)
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise TransformationError("Could not read image", detail=str(e)) from e

        image = ImageOps.exif_transpose(image)
        for operation in OPERATIONS:
            if operation in variation.options:
                image = self.apply(image, operation, variation.options[operation])

        save_kwargs = {}
        quality = variation.options.get("quality")
        if quality is not None:
            if isinstance(quality, bool) or not isinstance(quality, int):
                raise TransformationError(f"Invalid quality {quality!r}")
            save_kwargs["quality"] = quality
        if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        out = io.BytesIO()
        try:
            image.save(out, format=pil_format, **save_kwargs)
        except (OSError, ValueError) as e:
            raise TransformationError(f"Could not write {pil_format}", detail=str(e)) from e
        return TransformResult(out.getvalue(), output_content_type)
