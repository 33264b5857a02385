from variantsio.settings import Settings, settings as default_settings

from .base import TransformerRegistry, Transformer, TransformResult
from .image import ImageTransformer
from .video import FfmpegTransformer


def default_registry(settings: Settings = default_settings) -> TransformerRegistry:
    registry = TransformerRegistry([ImageTransformer()])
    if settings.video_transformer:
        registry = registry.register(FfmpegTransformer())
    return registry
