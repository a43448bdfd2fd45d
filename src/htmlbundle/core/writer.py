"""
Output writer and path substitution.

Writes every remaining registry entry to its final path. Text outputs that
contain literal paths to other outputs (chunk imports, sourcemap comments)
get those literals rewritten to the final names first. HTML documents are
written last, after their rewrite actions and optional minification.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import htmlmin

from .naming import NameAssignment
from .registry import FileRegistry
from .rewriter import HTMLRewriter, RewriteAction
from ..utils.file_manager import FileManager
from ..utils.paths import relative_reference


# htmlmin.minify keyword arguments; callers may override any of them
DEFAULT_HTML_OPTIONS: Dict[str, Any] = {
    "remove_comments": True,
    "remove_empty_space": True,
    "remove_all_empty_space": False,
    "reduce_empty_attributes": True,
    "reduce_boolean_attributes": False,
    "remove_optional_attribute_quotes": False,
    "convert_charrefs": True,
    "keep_pre": False,
    "pre_tags": ("pre", "textarea", "script", "style"),
    "pre_attr": "pre",
}


def substitute_paths(text: str, replacements: Sequence[Tuple[str, str]]) -> str:
    """
    Rewrite literal paths inside quoted strings, bare parentheses and
    ``sourceMappingURL=`` comments. A query string or fragment after a
    quoted or parenthesized path is kept.

    All replacements are applied in one pass, so a new path is never
    rewritten again by a later pair.
    """
    mapping = {old: new for old, new in replacements if old != new}
    if not mapping:
        return text
    alternatives = '|'.join(re.escape(old) for old in sorted(mapping, key=len, reverse=True))
    pattern = re.compile(
        r'(?P<quote>["\'`])(?P<quoted>' + alternatives + r')(?P<qsuffix>[?#][^"\'`\s]*)?(?P=quote)'
        r'|(?P<open>\(\s*)(?P<bare>' + alternatives + r')(?P<bsuffix>[?#][^)\s]*)?(?P<close>\s*\))'
        r'|(?P<map>sourceMappingURL=)(?P<mapped>' + alternatives + r')(?![\w./-])'
    )

    def replace(match):
        if match.group('quoted') is not None:
            q = match.group('quote')
            return q + mapping[match.group('quoted')] + (match.group('qsuffix') or '') + q
        if match.group('bare') is not None:
            return (match.group('open') + mapping[match.group('bare')]
                    + (match.group('bsuffix') or '') + match.group('close'))
        return match.group('map') + mapping[match.group('mapped')]

    return pattern.sub(replace, text)


def minify_html(text: str, options: Optional[Dict[str, Any]] = None) -> str:
    """Minify an HTML document with htmlmin; unknown options are ignored with a warning."""
    logger = logging.getLogger(__name__)
    html_options = dict(DEFAULT_HTML_OPTIONS)
    for key, value in (options or {}).items():
        if key in html_options:
            html_options[key] = value
        else:
            logger.warning(f"htmlmin option '{key}' not recognized")
    return htmlmin.minify(text, **html_options)


class Writer:
    def __init__(self,
                 outdir: str,
                 minify_html: bool = False,
                 html_options: Optional[Dict[str, Any]] = None,
                 excluded_selectors: Sequence[str] = ('a',),
                 tracker=None):
        self.files = FileManager(outdir)
        self.minify_html = minify_html
        self.html_options = html_options or {}
        self.rewriter = HTMLRewriter(excluded_selectors)
        self.tracker = tracker
        self.logger = logging.getLogger(__name__)

    def _content(self, registry: FileRegistry, key: str, final: str, assignment: NameAssignment):
        """Bytes to write for a non-HTML output, with mapped literals rewritten."""
        replacements = []
        if assignment.mappings is not None:
            replacements = assignment.mappings.replacements_for(key, posixpath.dirname(final))
        if not replacements:
            return registry.read_bytes(key)
        return substitute_paths(registry.read_text(key), replacements)

    def render_document(self,
                        registry: FileRegistry,
                        key: str,
                        assignment: NameAssignment,
                        actions: Iterable[RewriteAction]) -> str:
        """Final text of one HTML document: actions applied, then minified if enabled."""
        final = assignment.final_path(key) or posixpath.basename(key)
        html_dir = posixpath.dirname(final)
        text = registry.read_text(key)
        actions = [a for a in actions if a.document == key]

        def resolve_path(target: str) -> Optional[str]:
            target_final = assignment.final_path(target)
            if target_final is None:
                return None
            return relative_reference(target_final, html_dir)

        def transform_text(source: Optional[str], inlined: str) -> str:
            if assignment.mappings is None or source is None:
                return inlined
            return substitute_paths(inlined, assignment.mappings.replacements_for(source, html_dir))

        if actions:
            text = self.rewriter.apply(text, actions, resolve_path, transform_text)
        if self.minify_html:
            try:
                text = minify_html(text, self.html_options)
            except Exception as e:
                if self.tracker is not None:
                    self.tracker.log_warning(f"HTML minification failed: {e}", context='html', path=key)
                else:
                    self.logger.warning(f"HTML minification failed for {key}: {e}")
        return text

    def emit(self,
             registry: FileRegistry,
             assignment: NameAssignment,
             actions: Iterable[RewriteAction] = ()) -> List[str]:
        """
        Write every registry entry below the output directory.

        Args:
            registry: The build's registry after naming
            assignment: Final paths and the path mapping table
            actions: Rewrite actions for the HTML documents

        Returns:
            Absolute paths of the written files
        """
        actions = list(actions)
        documents = sorted(key for key, _ in registry.html_documents())
        written: List[str] = []

        for key, details in sorted(registry.items()):
            if key in documents:
                continue
            final = assignment.final_path(key)
            if final is None:
                self.logger.warning(f"No output path assigned to {key}; skipped")
                continue
            path = self.files.write(final, self._content(registry, key, final, assignment))
            if path:
                written.append(path)

        for key in documents:
            final = assignment.final_path(key)
            if final is None:
                self.logger.warning(f"No output path assigned to {key}; skipped")
                continue
            path = self.files.write(final, self.render_document(registry, key, assignment, actions))
            if path:
                written.append(path)

        self.files.cleanup_empty_directories()
        self.logger.info(f"Wrote {len(written)} file(s) to {self.files.base_output_dir}")
        return written
