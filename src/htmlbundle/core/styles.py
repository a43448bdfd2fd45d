"""
Style stage.

Compiles Sass/SCSS stylesheets to CSS and, when minification is enabled,
minifies every stylesheet. A stylesheet that fails to compile or minify
keeps its previous content; the build goes on. The local files a stylesheet
reaches through ``url()`` and ``@import`` are registered and linked so the
writer can point them at their final names.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import unquote

import rcssmin
import sass

from .config import SASS_EXTENSIONS, STYLE_EXTENSIONS
from .naming import ImportLink
from .registry import FileDetails, FileRegistry, KIND_ASSET
from ..utils.paths import (change_extension, file_extension, is_local_reference,
                           normalize_extensions, relative_to_root, split_reference)


# Options understood by rcssmin.cssmin
DEFAULT_CSS_OPTIONS: Dict[str, Any] = {
    'keep_bang_comments': False,
}

CSS_URL_PATTERN = re.compile(r"url\(\s*(['\"]?)([^'\")]+?)\1\s*\)", re.I)
CSS_IMPORT_PATTERN = re.compile(r"@import\s+(['\"])([^'\"]+)\1", re.I)


class StyleError(Exception):
    """A stylesheet could not be compiled or minified."""


@dataclass
class CSSMinifyResult:
    styles: str
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def minify_css(text: str, options: Optional[Dict[str, Any]] = None) -> CSSMinifyResult:
    """Minify CSS text with rcssmin; unknown options are reported as warnings."""
    css_options = dict(DEFAULT_CSS_OPTIONS)
    warnings = []
    for key, value in (options or {}).items():
        if key in css_options:
            css_options[key] = value
        else:
            warnings.append(f"CSS minifier option '{key}' not recognized")
    return CSSMinifyResult(styles=rcssmin.cssmin(text, **css_options), warnings=warnings)


def compile_sass(text: str, path: str, options: Optional[Dict[str, Any]] = None) -> str:
    """
    Compile Sass or SCSS source to CSS.

    Imports are searched relative to the stylesheet's directory; ``.sass``
    files use the indented syntax.

    Raises:
        StyleError: If libsass rejects the source
    """
    sass_options = {'output_style': 'expanded'}
    sass_options.update(options or {})
    try:
        return sass.compile(
            string=text,
            include_paths=[os.path.dirname(path)],
            indented=file_extension(path) == '.sass',
            **sass_options,
        )
    except sass.CompileError as e:
        raise StyleError(str(e)) from e


def normalize_minify_result(value: Any) -> CSSMinifyResult:
    """Accept what a caller-supplied minifier returns: text, a dict or a CSSMinifyResult."""
    if isinstance(value, CSSMinifyResult):
        return value
    if isinstance(value, str):
        return CSSMinifyResult(styles=value)
    if isinstance(value, dict):
        return CSSMinifyResult(
            styles=value.get('styles', value.get('css', '')),
            warnings=list(value.get('warnings') or []),
            errors=list(value.get('errors') or []),
        )
    raise StyleError(f"Unsupported CSS minifier result: {type(value).__name__}")


def find_css_references(css_text: str) -> List[str]:
    """
    Local paths a stylesheet reaches through ``url()`` and ``@import``.

    Data URIs, absolute and root-relative URLs and fragments are skipped.
    Query strings and fragments are cut off the returned paths.

    Returns:
        Paths as written, in order of first appearance
    """
    references: List[str] = []
    for pattern in (CSS_URL_PATTERN, CSS_IMPORT_PATTERN):
        for match in pattern.finditer(css_text):
            raw = match.group(2).strip()
            if not is_local_reference(raw):
                continue
            path_part, _ = split_reference(raw)
            if path_part and path_part not in references:
                references.append(path_part)
    return references


class StyleStage:
    def __init__(self,
                 minify: bool = False,
                 css_options: Optional[Dict[str, Any]] = None,
                 css_minifier: Optional[Callable[..., Any]] = None,
                 tracker=None,
                 excluded_extensions=()):
        self.minify = minify
        self.excluded_extensions = set(normalize_extensions(excluded_extensions))
        self.css_options = css_options or {}
        self.css_minifier = css_minifier
        self.tracker = tracker
        self.logger = logging.getLogger(__name__)
        self.links: List[ImportLink] = []

    def _error(self, error: Exception, path: str):
        if self.tracker is not None:
            self.tracker.log_error(error, context='style', path=path)
        else:
            self.logger.error(f"{error} ({path})")

    def _warning(self, message: str, path: str):
        if self.tracker is not None:
            self.tracker.log_warning(message, context='style', path=path)
        else:
            self.logger.warning(f"{message} ({path})")

    def _minify(self, text: str) -> CSSMinifyResult:
        if self.css_minifier is not None:
            return normalize_minify_result(self.css_minifier(text, self.css_options))
        return minify_css(text, self.css_options)

    def transform_file(self, registry: FileRegistry, key: str, shared_root: str) -> bool:
        """
        Compile and minify one stylesheet in place.

        Returns:
            True when the registry content changed
        """
        details = registry[key]
        text = registry.read_text(key)
        changed = False

        if file_extension(key) in SASS_EXTENSIONS:
            try:
                text = compile_sass(text, key)
            except StyleError as e:
                self._error(e, key)
                return False
            rel_path = relative_to_root(details.original_path or key, shared_root)
            registry.set_content(key, text, output_path=change_extension(rel_path, '.css'))
            changed = True

        if not self.minify:
            return changed

        try:
            result = self._minify(text)
        except Exception as e:
            self._error(StyleError(f"CSS minification failed: {e}"), key)
            return changed
        for warning in result.warnings:
            self._warning(warning, key)
        if result.errors:
            for message in result.errors:
                self._error(StyleError(message), key)
            return changed

        registry.set_content(key, result.styles)
        return True

    def collect_links(self, registry: FileRegistry, key: str) -> List[ImportLink]:
        """
        Link one stylesheet to the local files it references.

        References resolve against the stylesheet's source directory.
        Targets not yet in the registry are registered as assets; missing
        files and excluded extensions are left as written.
        """
        details = registry[key]
        base_dir = os.path.dirname(details.original_path or key)
        links = []
        for literal in find_css_references(registry.read_text(key)):
            if file_extension(literal) in self.excluded_extensions:
                continue
            target = FileRegistry.normalize(os.path.join(base_dir, literal))
            if target not in registry and not os.path.isfile(target):
                # Percent-encoded names (my%20font.woff)
                decoded = FileRegistry.normalize(os.path.join(base_dir, unquote(literal)))
                if decoded in registry or os.path.isfile(decoded):
                    target = decoded
            if target not in registry:
                if not os.path.isfile(target):
                    self.logger.debug(f"{key}: '{literal}' not found")
                    continue
                registry.register(target, FileDetails(kind=KIND_ASSET, original_path=target))
            if target != key:
                links.append(ImportLink(key, literal, target))
        return links

    def transform(self, registry: FileRegistry, shared_root: str) -> int:
        """
        Run every source stylesheet in the registry through the stage.

        Stylesheets emitted by the script compiler are left alone; the
        compiler already applied the build's minification to them. Links
        from the stylesheets to the files they reference are collected in
        ``self.links``; stylesheets reached through ``@import`` are
        processed as well.

        Returns:
            Number of stylesheets whose content changed
        """
        changed = 0
        queue = [key for key, _ in registry.by_extension(STYLE_EXTENSIONS)]
        seen = set(queue)
        while queue:
            key = queue.pop(0)
            details = registry[key]
            if details.original_path is None and details.output_path is not None:
                continue
            if self.transform_file(registry, key, shared_root):
                changed += 1
            for link in self.collect_links(registry, key):
                self.links.append(link)
                if link.target not in seen and file_extension(link.target) in STYLE_EXTENSIONS:
                    seen.add(link.target)
                    queue.append(link.target)
        self.logger.info(f"Processed stylesheets: {changed} changed, {len(self.links)} reference(s) linked")
        return changed
