import re
from typing import Iterable, List, NamedTuple, Optional

_NAME_RE = re.compile(r"([0-9]+)\.(jpg|jpeg|png|webp|gif)", re.IGNORECASE)


class ImageName(NamedTuple):
    index: int
    extension: str  # as stored, without the dot
    name: str


def parse_name(name: Optional[str]) -> Optional[ImageName]:
    """
    Parse '<digits>.<ext>' (ext in jpg/jpeg/png/webp/gif, any case).
    Returns None for anything else, including hidden files and nested paths.
    """
    if not name:
        return None
    m = _NAME_RE.fullmatch(name)
    if not m:
        return None
    return ImageName(int(m.group(1)), m.group(2), name)


def is_valid_image_name(name: Optional[str]) -> bool:
    return parse_name(name) is not None


def with_index(parsed: ImageName, index: int) -> str:
    """Same extension, new position: ImageName(3, 'png', '3.png') -> '1.png'."""
    return f"{index}.{parsed.extension}"


def parse_names(names: Iterable[str]) -> List[ImageName]:
    """Valid image names only, in input order."""
    out = []
    for n in names:
        p = parse_name(n)
        if p:
            out.append(p)
    return out


def sort_key(parsed: ImageName):
    return (parsed.index, parsed.name)
