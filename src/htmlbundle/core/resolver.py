"""
Module resolution for the script stage.

Scripts are compiled from a per-build scratch copy of the shared root, so an
import literal written in a source file may point at a scratch copy, at the
file's true original directory, or outside the shared root altogether.
ModuleResolver decides which, in a fixed order of precedence:

1. URLs are external and left alone.
2. Bare specifiers (``lodash``, ``@scope/pkg``) are packages left to the compiler.
3. Relative and absolute paths are looked up in the scratch copy first,
   then in the original directory.
4. A file found outside the shared root while code splitting is enabled is
   marked external: the script stage copies it into the scratch tree and
   compiles it as an extra entrypoint.
5. Anything else is left for the compiler to report.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..utils.paths import is_inside, is_url


RESOLVE_URL = "url"
RESOLVE_PACKAGE = "package"
RESOLVE_SCRATCH = "scratch"
RESOLVE_ORIGINAL = "original"
RESOLVE_EXTERNAL = "external"
RESOLVE_UNRESOLVED = "unresolved"

# Extensions tried, in order, for extensionless specifiers
RESOLVE_EXTENSIONS = ('.ts', '.tsx', '.js', '.jsx', '.mjs', '.cjs', '.json', '.css')

IMPORT_PATTERN = re.compile(
    r'''\b(?:from|import|require)\s*\(?\s*(["'])([^"'\r\n]+)\1'''
)


@dataclass(frozen=True)
class Resolution:
    kind: str
    path: Optional[str] = None
    recorded: bool = False  # copied below _external/ and compiled as an extra entrypoint


def find_import_literals(text: str) -> List[Tuple[int, int, str]]:
    """
    Import specifiers written in a script.

    Matches ``import x from "..."``, ``export ... from "..."``, side-effect
    ``import "..."``, dynamic ``import("...")`` and ``require("...")``.

    Returns:
        (start, end, literal) spans of the specifier text, in order
    """
    return [(m.start(2), m.end(2), m.group(2)) for m in IMPORT_PATTERN.finditer(text)]


def is_path_specifier(literal: str) -> bool:
    return literal.startswith(('./', '../', '/')) or literal in ('.', '..')


class ModuleResolver:
    def __init__(self, scratch_dir: str, shared_root: str, splitting: bool = False):
        self.scratch_dir = scratch_dir
        self.shared_root = shared_root
        self.splitting = splitting

    def scratch_path(self, original: str) -> Optional[str]:
        """Location of a shared-root file inside the scratch copy."""
        if not is_inside(original, self.shared_root):
            return None
        return os.path.join(self.scratch_dir, os.path.relpath(original, self.shared_root))

    def _probe(self, candidate: str) -> Optional[str]:
        if os.path.isfile(candidate):
            return candidate
        for extension in RESOLVE_EXTENSIONS:
            if os.path.isfile(candidate + extension):
                return candidate + extension
        if os.path.isdir(candidate):
            for extension in RESOLVE_EXTENSIONS:
                index = os.path.join(candidate, 'index' + extension)
                if os.path.isfile(index):
                    return index
        return None

    def resolve(self, importer: str, literal: str) -> Resolution:
        """
        Resolve one import literal.

        Args:
            importer: Original (not scratch) path of the importing file
            literal: Specifier exactly as written

        Returns:
            Resolution describing where the module lives
        """
        if is_url(literal):
            return Resolution(RESOLVE_URL)
        if not is_path_specifier(literal):
            return Resolution(RESOLVE_PACKAGE)

        if literal.startswith('/'):
            original = os.path.normpath(literal)
        else:
            original = os.path.normpath(os.path.join(os.path.dirname(importer), literal))

        scratch = self.scratch_path(original)
        if scratch is not None:
            found = self._probe(scratch)
            if found is not None:
                return Resolution(RESOLVE_SCRATCH, found)

        found = self._probe(original)
        if found is None:
            return Resolution(RESOLVE_UNRESOLVED)
        if self.splitting and not is_inside(found, self.shared_root):
            return Resolution(RESOLVE_EXTERNAL, found, recorded=True)
        return Resolution(RESOLVE_ORIGINAL, found)
