import re
from typing import Dict, Iterable, List
from urllib.parse import urlparse

from ..core.config import ELEMENT_NAME_MAX_LENGTH

DEFAULT_SITE_NAME = "site"


def sanitize_name(name: str, max_length: int = ELEMENT_NAME_MAX_LENGTH) -> str:
    """Replace every non-alphanumeric character with '_' and truncate."""
    return re.sub(r"[^a-zA-Z0-9]", "_", name or "")[:max_length]


def extract_site_name(url: str) -> str:
    """Site label from the URL host: dots become '_', other disallowed chars dropped."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if not host:
        return DEFAULT_SITE_NAME
    label = re.sub(r"[^a-zA-Z0-9_]", "", host.replace(".", "_"))
    return label or DEFAULT_SITE_NAME


def method_name(name: str) -> str:
    """Identifier form of a tool name: runs of other characters collapse to one '_'."""
    return re.sub(r"[^a-zA-Z0-9]+", "_", name or "").strip("_")


def dedupe_names(names: Iterable[str], reserved: Iterable[str] = ()) -> List[str]:
    """Suffix later duplicates with _2, _3, ... in order; reserved names are never reused."""
    seen: Dict[str, int] = {}
    taken = set(reserved)
    result: List[str] = []
    for name in names:
        candidate = name
        if candidate in taken:
            n = seen.get(name, 1)
            while candidate in taken:
                n += 1
                candidate = f"{name}_{n}"
            seen[name] = n
        taken.add(candidate)
        result.append(candidate)
    return result
