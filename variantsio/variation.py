"""
A variation is the normalized description of one transformation of a blob,
e.g. ``{"resize": "100x100"}`` or ``{"ffmpeg_opts": "...", "format": "mp4"}``.

Two variations are the same iff their canonical serializations are
byte-identical, which makes the digest independent of option order and of how
the options were built.
"""
import base64
import enum
import hashlib
import json
import pathlib
from typing import Any, Dict, Mapping, Optional, Union

KNOWN_OPTIONS = {
    "crop",
    "ffmpeg_opts",
    "format",
    "quality",
    "resize",
    "resize_to_fill",
    "resize_to_fit",
    "resize_to_limit",
    "rotate",
}


class DescriptorError(ValueError):
    pass


def _normalize_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return _normalize_value(value.value)
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, pathlib.PurePath):
        return str(value)
    if isinstance(value, Mapping):
        return normalize(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_value(v) for v in value]
    raise DescriptorError(f"Unsupported option value {value!r}")


def normalize(raw_options: Mapping[str, Any], strict: bool = False) -> Dict[str, Any]:
    """Key-sorted copy of the options with every value normalized"""
    canonical: Dict[str, Any] = {}
    for key in sorted(raw_options):
        if not isinstance(key, str):
            raise DescriptorError(f"Option names must be strings, got {key!r}")
        if strict and key not in KNOWN_OPTIONS:
            raise DescriptorError(f"Unknown option {key}")
        canonical[key] = _normalize_value(raw_options[key])
    return canonical


def serialize(canonical: Mapping[str, Any]) -> bytes:
    return json.dumps(
        canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def digest(canonical: Mapping[str, Any]) -> str:
    return hashlib.sha256(serialize(canonical)).hexdigest()


class Variation:
    def __init__(self, options: Mapping[str, Any], strict: bool = False):
        self.options = normalize(options, strict=strict)
        self.digest = digest(self.options)

    @classmethod
    def wrap(
        cls, descriptor: Union["Variation", Mapping[str, Any], str], strict: bool = False
    ) -> "Variation":
        if isinstance(descriptor, Variation):
            return descriptor
        if isinstance(descriptor, str):
            return cls.decode(descriptor, strict=strict)
        return cls(descriptor, strict=strict)

    @classmethod
    def decode(cls, key: str, strict: bool = False) -> "Variation":
        try:
            padded = key + "=" * (-len(key) % 4)
            options = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (ValueError, TypeError) as e:
            raise DescriptorError(f"Malformed variation key {key!r}") from e
        if not isinstance(options, dict):
            raise DescriptorError(f"Malformed variation key {key!r}")
        return cls(options, strict=strict)

    @property
    def key(self) -> str:
        """URL safe encoding that `decode` turns back into this variation"""
        return base64.urlsafe_b64encode(serialize(self.options)).decode("ascii").rstrip("=")

    @property
    def format(self) -> Optional[str]:
        fmt = self.options.get("format")
        return str(fmt).lower().lstrip(".") if fmt else None

    def __eq__(self, other) -> bool:
        return isinstance(other, Variation) and other.digest == self.digest

    def __hash__(self) -> int:
        return hash(self.digest)

    def __repr__(self) -> str:
        return f"<Variation({self.options})>"
