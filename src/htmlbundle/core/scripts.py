"""
Script stage.

Compiles every buildable script referenced from the HTML documents in one
compiler run, so shared modules are split out once, and reconciles the
compiler's outputs back into the registry. Returns the import links between
outputs so the writer can fix the literal paths once final names are known.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import shutil
import tempfile
from typing import Dict, List, Tuple

from .compiler import CompileError, CompileOptions, CompileResult, SCRIPT_OUTPUT_EXTENSIONS, default_compiler
from .naming import ImportLink
from .registry import (
    FileDetails,
    FileRegistry,
    HTML_EXTENSIONS,
    KIND_ASSET,
    KIND_CHUNK,
    KIND_ENTRY_POINT,
    KIND_SOURCEMAP,
)
from .resolver import ModuleResolver, RESOLVE_EXTERNAL, RESOLVE_ORIGINAL, find_import_literals
from ..utils.hashing import short_hash
from ..utils.paths import file_extension, relative_reference


EXTERNAL_DIR = '_external'


class ScriptStage:
    def __init__(self, compiler=None, tracker=None):
        self._compiler = compiler
        self.tracker = tracker
        self.logger = logging.getLogger(__name__)

    @property
    def compiler(self):
        if self._compiler is None:
            self._compiler = default_compiler()
        return self._compiler

    def _log_failure(self, key: str, result: CompileResult):
        messages = '; '.join(str(log) for log in result.errors) or 'compiler reported failure'
        error = CompileError(f"Failed to compile {key}: {messages}")
        if self.tracker is not None:
            self.tracker.log_error(error, context='script', path=key,
                                   additional_info={'logs': [str(log) for log in result.logs]})
        else:
            self.logger.error(str(error))

    # Scratch materialization

    def _scratch_target(self, resolver: ModuleResolver, original: str) -> str:
        scratch = resolver.scratch_path(original)
        if scratch is None:
            scratch = os.path.join(resolver.scratch_dir, EXTERNAL_DIR,
                                   short_hash(original), os.path.basename(original))
        return scratch

    def _materialize(self, path: str, content: bytes):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(content)

    def _rewrite_imports(self,
                         resolver: ModuleResolver,
                         original: str,
                         scratch: str,
                         pending: List[Tuple[str, str]],
                         build_extensions: List[str]):
        """Point the imports of one materialized script at real files."""
        with open(scratch, 'r', encoding='utf-8', errors='replace') as f:
            text = f.read()

        pieces = []
        last = 0
        for start, end, literal in find_import_literals(text):
            resolution = resolver.resolve(original, literal)
            replacement = None
            if resolution.kind == RESOLVE_ORIGINAL:
                replacement = resolution.path.replace(os.sep, '/')
            elif resolution.kind == RESOLVE_EXTERNAL:
                target_scratch = self._scratch_target(resolver, resolution.path)
                if not os.path.exists(target_scratch):
                    with open(resolution.path, 'rb') as f:
                        self._materialize(target_scratch, f.read())
                    if file_extension(resolution.path) in build_extensions:
                        pending.append((resolution.path, target_scratch))
                replacement = relative_reference(
                    os.path.relpath(target_scratch, resolver.scratch_dir).replace(os.sep, '/'),
                    os.path.relpath(os.path.dirname(scratch), resolver.scratch_dir).replace(os.sep, '/'),
                )
            if replacement is not None and replacement != literal:
                pieces.append(text[last:start])
                pieces.append(replacement)
                last = end
        if not pieces:
            return
        pieces.append(text[last:])
        with open(scratch, 'w', encoding='utf-8') as f:
            f.write(''.join(pieces))

    def _prepare_scratch(self,
                         registry: FileRegistry,
                         resolver: ModuleResolver,
                         entries: List[str],
                         build_extensions: List[str]) -> Tuple[Dict[str, str], List[str]]:
        """
        Copy entrypoints and in-memory files into the scratch directory.

        Every materialized script has its imports rewritten, so a module
        that only exists in memory still reaches its on-disk siblings.
        Files outside the shared root reached while code splitting is
        enabled are copied below ``_external/`` and compiled as extra
        entrypoints; the links to their outputs are found in the compiled
        text like any other.

        Returns:
            (scratch path -> registry key for HTML-referenced entries,
             scratch paths of entries added for external references)
        """
        pending: List[Tuple[str, str]] = []
        imported_only: List[str] = []
        for key, details in registry.items():
            if details.content is None or file_extension(key) in HTML_EXTENSIONS:
                continue
            if key in entries:
                continue
            scratch = self._scratch_target(resolver, key)
            self._materialize(scratch, registry.read_bytes(key))
            if file_extension(key) in build_extensions:
                imported_only.append(scratch)
                pending.append((key, scratch))

        entry_map: Dict[str, str] = {}
        for key in entries:
            scratch = self._scratch_target(resolver, key)
            self._materialize(scratch, registry.read_bytes(key))
            entry_map[scratch] = key
            pending.append((key, scratch))

        extra: List[str] = []
        while pending:
            original, scratch = pending.pop(0)
            self._rewrite_imports(resolver, original, scratch, pending, build_extensions)
            if scratch in entry_map or scratch in imported_only or scratch in extra:
                continue
            extra.append(scratch)
        return entry_map, extra

    # Compilation

    def _compile_isolating(self,
                           entrypoints: List[str],
                           options: CompileOptions) -> Tuple[CompileResult, Dict[str, CompileResult]]:
        """
        Compile a batch; when it fails, find the entrypoints that fail on
        their own and compile the rest together again.

        Returns:
            (result for the surviving batch, failed entrypoint -> its result)
        """
        result = self.compiler.compile(entrypoints, options)
        if result.success:
            return result, {}
        if len(entrypoints) <= 1:
            return result, {e: result for e in entrypoints}

        failed: Dict[str, CompileResult] = {}
        for entrypoint in entrypoints:
            probe = self.compiler.compile([entrypoint], options)
            if not probe.success:
                failed[entrypoint] = probe
        survivors = [e for e in entrypoints if e not in failed]
        if not survivors:
            return result, failed
        retry = self.compiler.compile(survivors, options)
        if not retry.success:
            return retry, {e: failed.get(e, retry) for e in entrypoints}
        return retry, failed

    def compile(self,
                registry: FileRegistry,
                config,
                shared_root: str) -> List[ImportLink]:
        """
        Build the HTML-referenced scripts and fold the outputs into the registry.

        Entry outputs replace the content of the script they came from and
        keep its HTML references; chunks, extracted stylesheets and sourcemaps
        become new registry entries below the shared root. A script that fails
        to build keeps its registry entry untouched.

        Args:
            registry: The build's registry
            config: BuildConfig of the build
            shared_root: Directory output paths are laid out from

        Returns:
            Import links between compiled outputs
        """
        build_extensions = config.html.build_extensions
        entries = sorted(key for key, details in registry.by_extension(build_extensions)
                         if details.is_referenced)
        if not entries:
            return []

        scratch_dir = tempfile.mkdtemp(prefix='htmlbundle-')
        try:
            resolver = ModuleResolver(scratch_dir, shared_root, splitting=config.splitting)
            entry_map, extra = self._prepare_scratch(registry, resolver, entries, build_extensions)
            options = CompileOptions(
                root=scratch_dir,
                minify=config.minify,
                sourcemap=config.sourcemap,
                splitting=config.splitting,
                plugins=list(config.html.plugins),
            )
            entrypoints = list(entry_map) + extra
            self.logger.info(f"Compiling {len(entry_map)} script(s)"
                             + (f" and {len(extra)} external module(s)" if extra else ''))
            result, failed = self._compile_isolating(entrypoints, options)
            for scratch, failure in failed.items():
                if scratch in entry_map:
                    self._log_failure(entry_map[scratch], failure)
            if not result.success:
                return []
            return self._reconcile(registry, result, entry_map, shared_root)
        finally:
            shutil.rmtree(scratch_dir, ignore_errors=True)

    # Reconciliation

    def _output_key(self, registry: FileRegistry, shared_root: str, rel_path: str) -> str:
        key = FileRegistry.normalize(os.path.join(shared_root, rel_path))
        existing = registry.get(key)
        if existing is not None and existing.original_path is not None:
            # A source file already lives at the output's location
            key = FileRegistry.normalize(os.path.join(shared_root, '_outputs', rel_path))
        return key

    def _reconcile(self,
                   registry: FileRegistry,
                   result: CompileResult,
                   entry_map: Dict[str, str],
                   shared_root: str) -> List[ImportLink]:
        normalized_entries = {os.path.normpath(k): v for k, v in entry_map.items()}
        output_keys: Dict[str, str] = {}
        texts: Dict[str, str] = {}

        for artifact in result.outputs:
            if artifact.kind == KIND_SOURCEMAP:
                continue
            is_script = file_extension(artifact.path) in SCRIPT_OUTPUT_EXTENSIONS
            source_key = None
            if artifact.kind == KIND_ENTRY_POINT and artifact.entry_point and is_script:
                source_key = normalized_entries.get(os.path.normpath(artifact.entry_point))

            if source_key is not None:
                registry.set_content(source_key, artifact.content, output_path=artifact.path)
                registry.reclassify(source_key, KIND_ENTRY_POINT)
                key = source_key
            else:
                key = self._output_key(registry, shared_root, artifact.path)
                kind = artifact.kind
                if kind == KIND_ENTRY_POINT:
                    # Stylesheets extracted from an entry are assets of their own
                    kind = KIND_CHUNK if is_script else KIND_ASSET
                registry.register(key, FileDetails(kind=kind, content=artifact.content,
                                                   output_path=artifact.path))
            output_keys[artifact.path] = key
            if is_script or file_extension(artifact.path) == '.css':
                texts[artifact.path] = artifact.text()

        for artifact in result.outputs:
            if artifact.kind != KIND_SOURCEMAP:
                continue
            owner = output_keys.get(artifact.path[:-len('.map')])
            key = self._output_key(registry, shared_root, artifact.path)
            registry.register(key, FileDetails(kind=KIND_SOURCEMAP, content=artifact.content,
                                               output_path=artifact.path, owner=owner))
            output_keys[artifact.path] = key

        links = find_output_links(texts, output_keys)
        return links


def find_output_links(texts: Dict[str, str], output_keys: Dict[str, str]) -> List[ImportLink]:
    """
    Literal references from one compiled output to another.

    Args:
        texts: output path -> text, for outputs that may reference others
        output_keys: output path -> registry key, for every output

    Returns:
        One link per (output, literal) found quoted in the output's text,
        plus ``sourceMappingURL`` references to sourcemaps
    """
    links: List[ImportLink] = []
    for path, text in texts.items():
        source_dir = posixpath.dirname(path)
        for other, target_key in output_keys.items():
            if other == path:
                continue
            literal = relative_reference(other, source_dir)
            if other.endswith('.map'):
                literal_name = posixpath.basename(other)
                if re.search(r'sourceMappingURL=' + re.escape(literal_name) + r'\b', text):
                    links.append(ImportLink(output_keys[path], literal_name, target_key))
                continue
            if f'"{literal}"' in text or f"'{literal}'" in text or f'({literal})' in text:
                links.append(ImportLink(output_keys[path], literal, target_key))
    return links

