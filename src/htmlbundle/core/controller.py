"""
htmlbundle Orchestrator: runs the end-to-end build.

Scan the HTML entrypoints, let the preprocessor hook adjust files, compile
scripts, transform stylesheets, plan the document rewrites, assign final
names and write everything out. One registry instance is threaded through
all stages; a failing file is reported and skipped, never fatal.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .assembly import plan
from .config import BuildConfig
from .diagnostics import HTMLParseError
from .logger import DiagnosticTracker, create_diagnostic_tracker
from .naming import NameAssignment, NamingEngine
from .preprocessor import run_preprocessor
from .registry import FileRegistry, HTML_EXTENSIONS
from .scanner import ReferenceScanner, register_scan
from .scripts import ScriptStage
from .styles import StyleStage
from .writer import Writer
from ..utils.paths import file_extension, find_common_root


@dataclass
class BuildResult:
    outputs: List[str] = field(default_factory=list)
    diagnostics: List[HTMLParseError] = field(default_factory=list)
    success: bool = True
    assignment: Optional[NameAssignment] = None
    summary: Dict = field(default_factory=dict)


class BundleController:
    def __init__(self, config: BuildConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.tracker: DiagnosticTracker = create_diagnostic_tracker(
            suppress_errors=config.html.suppress_errors)
        self._compiler = config.compiler

    def html_entrypoints(self) -> List[str]:
        return [e for e in self.config.entrypoints if file_extension(e) in HTML_EXTENSIONS]

    def shared_root(self, registry: FileRegistry) -> str:
        if self.config.root:
            return os.path.normpath(os.path.abspath(self.config.root))
        return find_common_root(sorted(registry.keys()))

    def _result(self, outputs: List[str], assignment: Optional[NameAssignment] = None) -> BuildResult:
        return BuildResult(
            outputs=outputs,
            diagnostics=self.tracker.diagnostics,
            success=not self.tracker.has_errors,
            assignment=assignment,
            summary=self.tracker.get_error_summary(),
        )

    def run(self, progress: Optional[Callable[[object], None]] = None) -> BuildResult:
        """Run every stage once and write the outputs."""
        entrypoints = self.html_entrypoints()
        if not entrypoints:
            self.logger.debug("No HTML entrypoints; nothing to do")
            return BuildResult()

        html = self.config.html
        registry = FileRegistry()

        # Stage 1: Scan
        if progress:
            progress({"type": "stage", "stage": "scan", "documents": len(entrypoints)})
        scanner = ReferenceScanner(html.excluded_selectors, html.excluded_extensions,
                                   max_workers=self.config.max_workers)
        for result in scanner.scan_all(entrypoints):
            register_scan(registry, result)
            for diagnostic in result.errors:
                self.tracker.report(diagnostic)
        if not len(registry):
            return self._result([])

        # Stage 2: Preprocess
        if html.preprocessor is not None:
            if progress:
                progress({"type": "stage", "stage": "preprocess"})
            try:
                run_preprocessor(html.preprocessor, registry)
            except Exception as e:
                self.tracker.log_error(e, context='preprocessor')

        shared_root = self.shared_root(registry)
        self.logger.info(f"Shared root: {shared_root} ({len(registry)} file(s))")

        # Stage 3: Scripts
        if progress:
            progress({"type": "stage", "stage": "scripts"})
        scripts = ScriptStage(compiler=self._compiler, tracker=self.tracker)
        links = scripts.compile(registry, self.config, shared_root)

        # Stage 4: Styles
        if progress:
            progress({"type": "stage", "stage": "styles"})
        styles = StyleStage(minify=self.config.minify_css,
                            css_options=html.css_options,
                            css_minifier=html.css_minifier,
                            tracker=self.tracker,
                            excluded_extensions=html.excluded_extensions)
        styles.transform(registry, shared_root)
        links = links + styles.links

        # Stage 5: Plan document rewrites
        documents = [key for key, _ in registry.html_documents()]
        actions = plan(documents, registry, html.build_extensions, html, tracker=self.tracker)

        # Stage 6: Names
        if progress:
            progress({"type": "stage", "stage": "naming"})
        engine = NamingEngine(self.config.naming, max_workers=self.config.max_workers)
        assignment = engine.assign_names(registry, shared_root, links)

        # Stage 7: Write
        if progress:
            progress({"type": "stage", "stage": "write"})
        writer = Writer(self.config.outdir,
                        minify_html=self.config.minify_html,
                        html_options=html.html_options,
                        excluded_selectors=html.excluded_selectors,
                        tracker=self.tracker)
        outputs = writer.emit(registry, assignment, actions)

        result = self._result(outputs, assignment)
        if progress:
            progress({"type": "done", "outputs": len(outputs), "errors": len(self.tracker.errors)})
        self.logger.info(f"Build finished: {len(outputs)} output(s), "
                         f"{len(self.tracker.errors)} error(s), {len(self.tracker.warnings)} warning(s)")
        return result
