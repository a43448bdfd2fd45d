"""
Naming and Hash Engine

Assigns every registry entry its final output path by filling a naming
template (``[dir]``, ``[name]``, ``[ext]``, ``[hash]``) from the file's path
below the shared root and the fingerprint of its final content. Files that
would land on the same output path with identical content collapse into one
output; references to the superseded copy are redirected to the survivor.
"""

from __future__ import annotations

import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .registry import (
    FileDetails,
    FileRegistry,
    HTML_EXTENSIONS,
    KIND_ASSET,
    KIND_BYTECODE,
    KIND_CHUNK,
    KIND_ENTRY_POINT,
    KIND_SOURCEMAP,
)
from ..utils.paths import file_extension, relative_reference, relative_to_root


DEFAULT_ENTRY_TEMPLATE = "[dir]/[name].[ext]"
DEFAULT_CHUNK_TEMPLATE = "[name]-[hash].[ext]"
# Compiler chunk names already carry the compiler's content hash
COMPILED_CHUNK_TEMPLATE = "[dir]/[name].[ext]"
DEFAULT_ASSET_TEMPLATE = "[dir]/[name].[ext]"
STYLE_OUTPUT_EXTENSIONS = ('.css', '.scss', '.sass')

# Processing order; earlier kinds win output path collisions
_KIND_ORDER = {
    KIND_ENTRY_POINT: 0,
    KIND_CHUNK: 1,
    KIND_BYTECODE: 2,
    KIND_ASSET: 3,
    KIND_SOURCEMAP: 4,
}


@dataclass
class NamingTemplates:
    entry: Optional[str] = None
    chunk: Optional[str] = None
    asset: Optional[str] = None
    css: Optional[str] = None
    default: Optional[str] = None  # single-string form; never renames HTML

    @classmethod
    def from_value(cls, value) -> 'NamingTemplates':
        if value is None:
            return cls()
        if isinstance(value, NamingTemplates):
            return value
        if isinstance(value, str):
            return cls(default=value)
        if isinstance(value, dict):
            unknown = set(value) - {'entry', 'chunk', 'asset', 'css'}
            if unknown:
                raise ValueError(f"Unknown naming key(s): {', '.join(sorted(unknown))}")
            return cls(**value)
        raise ValueError(f"Invalid naming option: {value!r}")

    def for_file(self, key: str, details: FileDetails) -> Optional[str]:
        """
        Template for one registry entry.

        Returns None for HTML documents when no explicit entry template was
        given: those keep their structural path. The ``entry`` template only
        ever names HTML documents; compiled scripts referenced from a page
        follow an explicit ``chunk`` template. Chunks the compiler named keep
        that name unless a template says otherwise.
        """
        extension = file_extension(details.output_path or key)
        if details.kind == KIND_ENTRY_POINT:
            if file_extension(key) in HTML_EXTENSIONS:
                return self.entry
            return self.chunk or self.default or DEFAULT_ENTRY_TEMPLATE
        if details.kind in (KIND_CHUNK, KIND_BYTECODE):
            if details.original_path is None and details.output_path is not None:
                return self.chunk or self.default or COMPILED_CHUNK_TEMPLATE
            return self.chunk or self.default or DEFAULT_CHUNK_TEMPLATE
        asset_template = self.asset or self.default or DEFAULT_ASSET_TEMPLATE
        if extension in STYLE_OUTPUT_EXTENSIONS:
            return self.css or asset_template
        return asset_template


def apply_template(template: str, rel_path: str, content_hash: str) -> str:
    """
    Fill a naming template for a file at ``rel_path`` below the shared root.

    ``[ext]`` is the extension without its dot; when the file has no
    extension the dot in front of ``[ext]`` is dropped as well.
    """
    directory, base = posixpath.split(rel_path)
    name, ext = posixpath.splitext(base)
    if not ext:
        template = template.replace('.[ext]', '')
    result = (template
              .replace('[dir]', directory or '.')
              .replace('[name]', name)
              .replace('[ext]', ext.lstrip('.'))
              .replace('[hash]', content_hash))
    return posixpath.normpath(result).lstrip('/')


def _contained(rel_path: str) -> str:
    """Keep paths that climb out of the shared root inside the output directory."""
    parts = rel_path.split('/')
    return '/'.join('_.._' if part == '..' else part for part in parts)


@dataclass(frozen=True)
class ImportLink:
    source: str    # key of the file whose text contains the literal
    literal: str   # path string exactly as written in that text
    target: str    # key of the file the literal points at


class PathMappingTable:
    """
    Literal path strings that must be rewritten once final names are known.

    Entries are scoped by the file whose text contains the literal; the new
    path is computed relative to the directory of whichever file ends up
    writing that text.
    """

    def __init__(self, resolve: Callable[[str], Optional[str]]):
        self._resolve = resolve
        self._by_source: Dict[str, List[ImportLink]] = {}

    def add(self, link: ImportLink):
        links = self._by_source.setdefault(link.source, [])
        if link not in links:
            links.append(link)

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_source.values())

    def links_for(self, source: str) -> List[ImportLink]:
        return list(self._by_source.get(source, []))

    def replacements_for(self, source: str, writer_dir: str) -> List[Tuple[str, str]]:
        """(old literal, new relative path) pairs for text originating from ``source``."""
        replacements = []
        for link in self._by_source.get(source, []):
            target_final = self._resolve(link.target)
            if target_final is None:
                continue
            new_literal = relative_reference(target_final, writer_dir)
            if new_literal.startswith('./') and not link.literal.startswith(('./', '../')):
                # bare names (sourceMappingURL=main.js.map) stay bare
                new_literal = new_literal[2:]
            if new_literal != link.literal:
                replacements.append((link.literal, new_literal))
        return replacements


@dataclass
class NameAssignment:
    shared_root: str
    final_paths: Dict[str, str] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    mappings: Optional[PathMappingTable] = None

    def final_path(self, key: str) -> Optional[str]:
        return self.final_paths.get(self.aliases.get(key, key))


class NamingEngine:
    def __init__(self, templates: Optional[NamingTemplates] = None, max_workers: int = 4):
        self.templates = templates or NamingTemplates()
        self.max_workers = max_workers
        self.logger = logging.getLogger(__name__)

    def _hash_all(self, registry: FileRegistry, keys: List[str]):
        # Independent reads; only files without in-memory content touch the disk
        pending = [k for k in keys if registry[k].hash is None]
        if not pending:
            return
        with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            list(ex.map(registry.ensure_hash, pending))

    def _source_path(self, key: str, details: FileDetails, shared_root: str) -> str:
        if details.output_path:
            return _contained(details.output_path)
        return _contained(relative_to_root(details.original_path or key, shared_root))

    def compute_names(self, registry: FileRegistry, shared_root: str) -> NameAssignment:
        """
        Work out final paths without touching the registry.

        Deterministic for a given registry state: entries are visited by
        kind and then by key, and earlier entries keep a contested path.
        """
        assignment = NameAssignment(shared_root=shared_root)
        keys = sorted(registry.keys(), key=lambda k: (_KIND_ORDER.get(registry[k].kind, 9), k))
        self._hash_all(registry, [k for k in keys if registry[k].kind != KIND_SOURCEMAP])

        holders: Dict[str, str] = {}
        for key in keys:
            details = registry[key]
            if details.kind == KIND_SOURCEMAP:
                continue
            rel_path = self._source_path(key, details, shared_root)
            template = self.templates.for_file(key, details)
            final = rel_path if template is None else apply_template(template, rel_path, details.hash)

            holder = holders.get(final)
            if holder is not None:
                if registry[holder].hash == details.hash and registry.read_bytes(holder) == registry.read_bytes(key):
                    self.logger.debug(f"{key} is identical to {holder}; sharing {final}")
                    assignment.aliases[key] = holder
                    continue
                final = self._disambiguate(final, details.hash, holders)
                self.logger.warning(f"Output path collision for {key}; renamed to {final}")

            holders[final] = key
            assignment.final_paths[key] = final

        # Sourcemaps follow the output they describe
        for key in keys:
            details = registry[key]
            if details.kind != KIND_SOURCEMAP:
                continue
            owner_final = assignment.final_path(details.owner) if details.owner else None
            if owner_final is not None:
                final = owner_final + '.map'
            else:
                final = self._source_path(key, details, shared_root)
            if final in holders:
                final = self._disambiguate(final, registry.ensure_hash(key), holders)
            holders[final] = key
            assignment.final_paths[key] = final

        return assignment

    def _disambiguate(self, final: str, content_hash: str, holders: Dict[str, str]) -> str:
        stem, ext = posixpath.splitext(final)
        candidate = f"{stem}-{content_hash}{ext}"
        counter = 2
        while candidate in holders:
            candidate = f"{stem}-{content_hash}-{counter}{ext}"
            counter += 1
        return candidate

    def assign_names(self,
                     registry: FileRegistry,
                     shared_root: str,
                     links: Iterable[ImportLink] = ()) -> NameAssignment:
        """
        Assign final paths, drop superseded duplicates and build the path
        mapping table.

        Args:
            registry: The build's registry; entries get ``final_path`` set
            shared_root: Directory all relative paths are computed from
            links: Literal references between files recorded by earlier stages

        Returns:
            The assignment, including the mapping table used by the writer
        """
        assignment = self.compute_names(registry, shared_root)

        for key, final in assignment.final_paths.items():
            registry[key].final_path = final
        for key in assignment.aliases:
            registry.delete(key)

        table = PathMappingTable(assignment.final_path)
        for link in links:
            source = assignment.aliases.get(link.source, link.source)
            table.add(ImportLink(source=source, literal=link.literal, target=link.target))
        assignment.mappings = table

        self.logger.info(f"Assigned {len(assignment.final_paths)} output paths "
                         f"({len(assignment.aliases)} duplicate(s) merged)")
        return assignment
