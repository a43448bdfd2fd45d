"""
Reference scanning.

This module walks an HTML document, finds the elements that point at local
files (scripts, stylesheets, images, ...) and resolves those references
against the document's directory. References that do not resolve produce a
located HTMLParseError instead of aborting the scan.
"""

from __future__ import annotations

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from .diagnostics import HTMLParseError, REASON_MISSING, build_diagnostic
from .registry import Attribute, FileDetails, FileRegistry, KIND_ASSET, KIND_ENTRY_POINT
from ..utils.file_manager import read_text
from ..utils.paths import file_extension, is_local_reference, normalize_extensions, split_reference


# First attribute present on an element wins
ATTRIBUTE_PRIORITY = ('src', 'href', 'data', 'action', 'data-src', 'lowsrc')


@dataclass
class ScannedFile:
    path: str                              # absolute, normalized
    attribute: Optional[Attribute] = None  # None for the document itself
    kind: str = KIND_ASSET


@dataclass
class ScanResult:
    document: str
    text: str = ''
    files: List[ScannedFile] = field(default_factory=list)
    errors: List[HTMLParseError] = field(default_factory=list)


class ReferenceScanner:
    def __init__(self,
                 excluded_selectors: Iterable[str] = ('a',),
                 excluded_extensions: Iterable[str] = (),
                 max_workers: int = 4):
        self.logger = logging.getLogger(__name__)
        self.excluded_selectors = [s.strip() for s in excluded_selectors if s and s.strip()]
        self.excluded_extensions = set(normalize_extensions(excluded_extensions))
        self.max_workers = max_workers

    def _candidates(self, soup: BeautifulSoup):
        if not self.excluded_selectors:
            return soup.find_all(True)
        return soup.select(f":not({', '.join(self.excluded_selectors)})")

    def _pick_attribute(self, element) -> Optional[str]:
        for name in ATTRIBUTE_PRIORITY:
            if element.has_attr(name):
                return name
        return None

    def _resolve(self, document_dir: str, value: str) -> str:
        path_part, _ = split_reference(value)
        resolved = os.path.normpath(os.path.join(document_dir, path_part))
        if not os.path.exists(resolved):
            # Percent-encoded names (my%20image.png)
            decoded = os.path.normpath(os.path.join(document_dir, unquote(path_part)))
            if os.path.exists(decoded):
                return decoded
        return resolved

    def scan(self, html_path: str) -> ScanResult:
        """
        Scan one HTML document for local file references.

        Elements matching an excluded selector are skipped entirely. For the
        rest, the attributes in ATTRIBUTE_PRIORITY are checked in order and
        the first one present decides the element's reference.

        Args:
            html_path: Path of the HTML document

        Returns:
            ScanResult with the document itself (as an entry point) and every
            existing referenced file in document order, plus one diagnostic
            per reference that does not exist
        """
        document = FileRegistry.normalize(html_path)
        text = read_text(document)
        result = ScanResult(document=document, text=text)
        document_dir = os.path.dirname(document)

        soup = BeautifulSoup(text, 'html.parser')
        seen = set()
        for element in self._candidates(soup):
            name = self._pick_attribute(element)
            if name is None:
                continue
            value = element.get(name)
            if isinstance(value, list):
                value = ' '.join(value)
            if not is_local_reference(value):
                continue

            resolved = self._resolve(document_dir, value)
            if file_extension(resolved) in self.excluded_extensions:
                self.logger.debug(f"Excluded by extension: {value} ({document})")
                continue

            attribute = Attribute(name=name, value=value, element=element.name,
                                  line=element.sourceline, column=element.sourcepos)
            if not os.path.isfile(resolved):
                result.errors.append(build_diagnostic(
                    document, text, element.name, name, value,
                    reason=REASON_MISSING,
                    near_line=element.sourceline,
                    near_column=element.sourcepos,
                ))
                continue

            if (resolved, attribute) in seen:
                continue
            seen.add((resolved, attribute))
            result.files.append(ScannedFile(path=resolved, attribute=attribute))

        result.files.append(ScannedFile(path=document, kind=KIND_ENTRY_POINT))
        self.logger.info(f"Scanned {document}: {len(result.files) - 1} reference(s), "
                         f"{len(result.errors)} missing")
        return result

    def scan_all(self, html_paths: List[str]) -> List[ScanResult]:
        """Scan several documents concurrently; results keep the input order."""
        if len(html_paths) <= 1 or self.max_workers <= 1:
            return [self.scan(p) for p in html_paths]
        with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            return list(ex.map(self.scan, html_paths))


def register_scan(registry: FileRegistry, result: ScanResult):
    """Record the files of one ScanResult in the registry."""
    for scanned in result.files:
        existing = registry.get(scanned.path)
        if existing is None:
            details = registry.register(scanned.path, FileDetails(kind=scanned.kind, original_path=scanned.path))
        else:
            details = existing
            if scanned.kind == KIND_ENTRY_POINT:
                details.kind = KIND_ENTRY_POINT
        if scanned.attribute is not None:
            details.add_reference(result.document, scanned.attribute)
