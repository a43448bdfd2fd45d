"""
Path and URL Utilities

This module tells local asset references apart from external URLs and
provides the path arithmetic shared by the pipeline stages: the shared root
of a batch of files, paths relative to that root, and the relative
references written back into documents.
"""

import os
import posixpath
import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse


_QUERY_SPLIT = re.compile(r'^([^?#]*)(.*)$', re.S)


def is_url(value: str) -> bool:
    """
    Check whether a reference carries a URL scheme.

    Single-letter schemes are Windows drive letters, not URLs.
    """
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and len(parsed.scheme) > 1


def is_local_reference(value: Optional[str]) -> bool:
    """
    Check whether an attribute value points at a file next to the document.

    Absolute URLs (``https:``, ``data:``, ``mailto:`` ...), protocol-relative
    and root-relative URLs, and fragments are all resolved by the browser,
    not by the build, so they are not local.

    Args:
        value: Raw attribute value as written in the document

    Returns:
        True if the value should be resolved against the document directory
    """
    if not value or not isinstance(value, str):
        return False
    value = value.strip()
    if not value:
        return False
    if value.startswith(('#', '/', '\\', '?')):
        return False
    if is_url(value):
        return False
    return True


def split_reference(value: str) -> Tuple[str, str]:
    """Split ``main.css?v=2#top`` into ``('main.css', '?v=2#top')``."""
    match = _QUERY_SPLIT.match(value.strip())
    return match.group(1), match.group(2)


def normalize_extension(extension: str) -> str:
    """Return ``extension`` lower-cased with exactly one leading dot."""
    extension = extension.strip().lower()
    if not extension:
        return extension
    return '.' + extension.lstrip('.')


def normalize_extensions(extensions: Optional[Iterable[str]]) -> List[str]:
    if not extensions:
        return []
    return [normalize_extension(e) for e in extensions if e and e.strip()]


def file_extension(path: str) -> str:
    return os.path.splitext(path)[1].lower()


def change_extension(path: str, extension: str) -> str:
    return os.path.splitext(path)[0] + extension


def find_common_root(paths: List[str]) -> str:
    """
    Compute the longest common leading directory of a batch of paths.

    When every path is identical the parent directory of that path is
    returned, so a batch made of a single document still gets a directory.

    Args:
        paths: Absolute file paths

    Returns:
        The shared root, or an empty string for an empty batch
    """
    if not paths:
        return ''
    if all(p == paths[0] for p in paths):
        return os.path.dirname(paths[0])

    split_paths = [os.path.normpath(p).split(os.sep) for p in paths]
    common: List[str] = []
    for parts in zip(*split_paths):
        if all(part == parts[0] for part in parts):
            common.append(parts[0])
        else:
            break

    root = os.sep.join(common)
    if common and not root:
        # Only the filesystem root is shared
        return os.sep
    return root


def relative_to_root(path: str, root: str) -> str:
    """Path of ``path`` below ``root`` with POSIX separators."""
    rel = os.path.relpath(path, root) if root else path
    return rel.replace(os.sep, '/')


def is_inside(path: str, root: str) -> bool:
    if not root:
        return True
    try:
        return os.path.commonpath([os.path.abspath(path), os.path.abspath(root)]) == os.path.abspath(root)
    except ValueError:
        return False


def relative_reference(target: str, from_dir: str) -> str:
    """
    Build the reference a file in ``from_dir`` uses to reach ``target``.

    Both arguments are POSIX paths relative to the output directory. The
    result always starts with ``./`` or ``../`` so that it reads as a
    relative module specifier as well as a relative URL.
    """
    rel = posixpath.relpath(target, from_dir or '.')
    if not rel.startswith('../'):
        rel = './' + rel
    return rel
