import mimetypes
import urllib.parse
from typing import Dict, Iterable, Iterator, List, Optional, TypeVar

T = TypeVar("T")


def build_url(base_url, path: Optional[str] = None, args_dict: Optional[Dict[str, str]] = None):
    # Returns a list in the structure of urlparse.ParseResult
    url_parts = list(urllib.parse.urlparse(base_url))
    if path is not None:
        url_parts[2] = urllib.parse.quote(path)
    url_parts[4] = urllib.parse.urlencode(args_dict or {})
    return urllib.parse.urlunparse(url_parts)


def guess_content_type(filename: str, declared: Optional[str] = None) -> str:
    if declared:
        return declared
    content_type, _ = mimetypes.guess_type(filename, strict=False)
    return content_type or "application/octet-stream"


def extension_for(content_type: str) -> str:
    if content_type == "image/jpeg":
        return "jpg"
    ext = mimetypes.guess_extension(content_type, strict=False)
    return ext.lstrip(".") if ext else "bin"


def buffer(items: Iterable[T], buffer_size: int = 10) -> Iterator[List[T]]:
    """Return small batches of items"""
    buf: List[T] = []
    for item in items:
        buf.append(item)
        if len(buf) >= buffer_size:
            yield buf
            buf = []
    if buf:
        yield buf
