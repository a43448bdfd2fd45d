"""
HTML assembly planning.

Decides, for every file an HTML document references, whether the document
gets the file's content inlined or keeps a reference that is repointed at
the file's final output, and records that decision as rewrite actions.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set

from .config import HTMLOptions, STYLE_EXTENSIONS
from .diagnostics import REASON_BUILD_FAILED, build_diagnostic
from .registry import FileRegistry, KIND_ASSET, KIND_ENTRY_POINT, KIND_SOURCEMAP
from .rewriter import RemoveAttribute, ReplaceWithLiteral, RewriteAction, SetAttribute, SetContent
from ..utils.paths import file_extension, split_reference


logger = logging.getLogger(__name__)


def escape_inline_script(text: str) -> str:
    """Keep inlined script text from closing its ``<script>`` element early."""
    return re.sub(r'<(/script)', r'\\x3C\1', text, flags=re.IGNORECASE)


def plan(html_files: Iterable[str],
         registry: FileRegistry,
         build_extensions: Iterable[str],
         options: Optional[HTMLOptions] = None,
         tracker=None) -> List[RewriteAction]:
    """
    Record the rewrite actions for a set of HTML documents.

    Inlined files are removed from the registry once every document has
    been planned, so they are never emitted on their own. Scripts that were
    meant to be compiled but have no compiled output are reported as
    "failed to build", get no action and are removed as well.

    Args:
        html_files: Registry keys of the documents to plan
        registry: The build's registry
        build_extensions: Extensions handled by the script compiler
        options: HTML options (inlining, kept paths)
        tracker: DiagnosticTracker receiving build failure diagnostics

    Returns:
        One action list, ordered by document and then by registry key
    """
    options = options or HTMLOptions()
    build_extensions = set(build_extensions)
    actions: List[RewriteAction] = []
    remove: Set[str] = set()

    for document in html_files:
        document = FileRegistry.normalize(document)
        document_text = None
        for key, details in sorted(registry.items()):
            attributes = details.references.get(document)
            if not attributes:
                continue
            extension = file_extension(key)

            for attribute in attributes:
                _, suffix = split_reference(attribute.value)
                keep = options.keeps_original_path(attribute.value)

                if extension in STYLE_EXTENSIONS:
                    if options.inline.css:
                        actions.append(ReplaceWithLiteral(document, attribute, tag='style',
                                                          text=registry.read_text(key), source=key))
                        remove.add(key)
                    elif not keep:
                        actions.append(SetAttribute(document, attribute, target=key, suffix=suffix))

                elif extension in build_extensions:
                    if details.output_path is None:
                        if document_text is None:
                            document_text = registry.read_text(document)
                        diagnostic = build_diagnostic(
                            document, document_text, attribute.element, attribute.name,
                            attribute.value, reason=REASON_BUILD_FAILED,
                            near_line=attribute.line, near_column=attribute.column,
                        )
                        if tracker is not None:
                            tracker.report(diagnostic)
                        else:
                            logger.error(diagnostic.render())
                        remove.add(key)
                    elif options.inline.js:
                        actions.append(RemoveAttribute(document, attribute, name=attribute.name))
                        actions.append(SetContent(document, attribute,
                                                  text=escape_inline_script(registry.read_text(key)),
                                                  source=key))
                        remove.add(key)
                    elif not keep:
                        actions.append(SetAttribute(document, attribute, target=key, suffix=suffix))

                else:
                    if details.kind != KIND_ENTRY_POINT:
                        registry.reclassify(key, KIND_ASSET)
                    if not keep:
                        actions.append(SetAttribute(document, attribute, target=key, suffix=suffix))

    for key in remove:
        registry.delete(key)
    # Sourcemaps of outputs that no longer exist on their own
    for key, details in registry.items():
        if details.kind == KIND_SOURCEMAP and details.owner in remove:
            registry.delete(key)

    logger.info(f"Planned {len(actions)} rewrite action(s); {len(remove)} file(s) inlined or dropped")
    return actions
