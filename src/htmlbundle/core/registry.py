"""
File Registry

The single mapping from a file's identity to its FileDetails record. A file's
identity is its resolved absolute source path, or for compiler-produced
chunks the absolute path the compiler assigned below the shared root. One
FileRegistry instance is created per build and passed to every stage.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..utils.file_manager import read_bytes
from ..utils.hashing import short_hash
from ..utils.paths import file_extension, normalize_extensions


Content = Union[str, bytes]

KIND_ENTRY_POINT = "entry-point"
KIND_CHUNK = "chunk"
KIND_ASSET = "asset"
KIND_SOURCEMAP = "sourcemap"
KIND_BYTECODE = "bytecode"

FILE_KINDS = (KIND_ENTRY_POINT, KIND_CHUNK, KIND_ASSET, KIND_SOURCEMAP, KIND_BYTECODE)

HTML_EXTENSIONS = ('.html', '.htm')


def content_to_text(content: Content) -> str:
    """Normalize in-memory content to text."""
    if isinstance(content, (bytes, bytearray)):
        return bytes(content).decode('utf-8', errors='replace')
    return content


def content_to_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode('utf-8')
    return bytes(content)


@dataclass(frozen=True)
class Attribute:
    name: str    # 'src', 'href', ...
    value: str   # value exactly as written in the document
    # Where the attribute was seen; informational, not part of its identity
    element: str = field(default='*', compare=False)
    line: Optional[int] = field(default=None, compare=False)
    column: Optional[int] = field(default=None, compare=False)

    @property
    def selector(self) -> str:
        escaped = self.value.replace('\\', '\\\\').replace('"', '\\"')
        return f'*[{self.name}="{escaped}"]'


@dataclass
class FileDetails:
    kind: str = KIND_ASSET
    original_path: Optional[str] = None     # None for pure compiler outputs
    content: Optional[Content] = None       # None: read from original_path
    attribute: Optional[Attribute] = None   # last attribute that referenced the file
    hash: Optional[str] = None
    # document path -> attributes in that document that reference the file
    references: Dict[str, List[Attribute]] = field(default_factory=dict)
    output_path: Optional[str] = None       # compiler output path relative to the shared root
    owner: Optional[str] = None             # for sourcemaps: key of the output they describe
    final_path: Optional[str] = None        # assigned by the naming engine

    def add_reference(self, document: str, attribute: Attribute):
        attributes = self.references.setdefault(document, [])
        if attribute not in attributes:
            attributes.append(attribute)
        self.attribute = attribute

    @property
    def is_referenced(self) -> bool:
        return any(self.references.values())


class FileRegistry:
    """
    Keyed store of every file the build knows about.

    Keys are absolute, normalized paths so two references to the same file
    always land on one entry.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._files: Dict[str, FileDetails] = {}

    @staticmethod
    def normalize(path: str) -> str:
        return os.path.normpath(os.path.abspath(path))

    def register(self, path: str, details: FileDetails) -> FileDetails:
        """
        Insert or replace the record for ``path``.

        Replacing keeps the existing attribute binding and document
        references when the new record carries none, so a rewrite target is
        never dropped.
        """
        key = self.normalize(path)
        existing = self._files.get(key)
        if existing is not None:
            if details.attribute is None:
                details.attribute = existing.attribute
            for document, attributes in existing.references.items():
                merged = details.references.setdefault(document, [])
                for attribute in attributes:
                    if attribute not in merged:
                        merged.append(attribute)

        if details.content is not None and details.hash is None:
            details.hash = short_hash(details.content)

        self._files[key] = details
        return details

    def get(self, path: str) -> Optional[FileDetails]:
        return self._files.get(self.normalize(path))

    def __getitem__(self, path: str) -> FileDetails:
        return self._files[self.normalize(path)]

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.normalize(path) in self._files

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._files.keys()))

    def __len__(self) -> int:
        return len(self._files)

    def keys(self) -> List[str]:
        return list(self._files.keys())

    def items(self) -> List[Tuple[str, FileDetails]]:
        return list(self._files.items())

    def reclassify(self, path: str, kind: str):
        if kind not in FILE_KINDS:
            raise ValueError(f"Unknown file kind: {kind}")
        self[path].kind = kind

    def set_content(self, path: str, content: Content, output_path: Optional[str] = None):
        """Replace a file's content and recompute its hash."""
        details = self[path]
        details.content = content
        details.hash = short_hash(content)
        if output_path is not None:
            details.output_path = output_path

    def delete(self, path: str) -> Optional[FileDetails]:
        return self._files.pop(self.normalize(path), None)

    def by_extension(self, extensions: Iterable[str]) -> List[Tuple[str, FileDetails]]:
        """Snapshot of the entries whose key ends in one of ``extensions``."""
        wanted = set(normalize_extensions(extensions))
        return [(key, details) for key, details in self._files.items()
                if file_extension(key) in wanted]

    def html_documents(self) -> List[Tuple[str, FileDetails]]:
        return [(key, details) for key, details in self.by_extension(HTML_EXTENSIONS)
                if details.kind == KIND_ENTRY_POINT]

    def read_bytes(self, path: str) -> bytes:
        details = self[path]
        if details.content is not None:
            return content_to_bytes(details.content)
        if not details.original_path:
            raise FileNotFoundError(f"No content or original file for {path}")
        return read_bytes(details.original_path)

    def read_text(self, path: str) -> str:
        details = self[path]
        if details.content is not None:
            return content_to_text(details.content)
        return self.read_bytes(path).decode('utf-8', errors='replace')

    def ensure_hash(self, path: str) -> str:
        """Hash of the file's current content, read from disk on first use."""
        details = self[path]
        if details.hash is None:
            details.hash = short_hash(self.read_bytes(path))
        return details.hash
