import abc
import logging
from typing import Iterable, Iterator, NamedTuple, Tuple

from variantsio import utils
from variantsio.schemas import InvariableError
from variantsio.variation import Variation

logger = logging.getLogger(__name__)


class TransformResult(NamedTuple):
    data: bytes
    content_type: str


class Transformer(abc.ABC):
    """
    A transformation backend.  Backends are asked in registration order whether
    they support a content type; the first that does performs the variation.
    """

    name = "transformer"

    @abc.abstractmethod
    def supports(self, content_type: str) -> bool:
        ...

    @abc.abstractmethod
    def transform(
        self, data: bytes, content_type: str, variation: Variation
    ) -> TransformResult:
        """Raises TransformationError when this variation can't be applied"""

    def output_content_type(self, content_type: str, variation: Variation) -> str:
        """The content type `transform` will produce, without transforming"""
        if variation.format:
            return utils.guess_content_type(f"variant.{variation.format}")
        return content_type

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.name})>"


class TransformerRegistry:
    """
    An ordered, immutable list of transformers.  Changing the registry means
    building a new one and swapping the reference, so a derivation that has
    already selected its backend is never affected.
    """

    def __init__(self, transformers: Iterable[Transformer] = ()):
        self.transformers: Tuple[Transformer, ...] = tuple(transformers)

    def register(self, transformer: Transformer) -> "TransformerRegistry":
        return TransformerRegistry(self.transformers + (transformer,))

    def replace(self, *transformers: Transformer) -> "TransformerRegistry":
        return TransformerRegistry(transformers)

    def select(self, content_type: str) -> Transformer:
        for transformer in self.transformers:
            if transformer.supports(content_type):
                return transformer
        raise InvariableError(f"No transformer supports {content_type}")

    def supports(self, content_type: str) -> bool:
        return any(t.supports(content_type) for t in self.transformers)

    def __iter__(self) -> Iterator[Transformer]:
        return iter(self.transformers)

    def __len__(self) -> int:
        return len(self.transformers)

    def __repr__(self) -> str:
        return f"<TransformerRegistry({list(self.transformers)})>"
