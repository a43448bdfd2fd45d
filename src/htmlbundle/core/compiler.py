"""
Script compiler contract.

The script stage talks to the bundler through this small contract: a list of
entrypoint paths plus pass-through options go in, a CompileResult with
kind-tagged output artifacts (or diagnostic logs) comes out. Failures are
reported in the result, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .registry import content_to_text


# Outputs that hold compiled script code
SCRIPT_OUTPUT_EXTENSIONS = ('.js', '.mjs', '.cjs')


class CompileError(Exception):
    """A compiler could not build one or more entrypoints."""


@dataclass
class CompileOptions:
    root: str                       # outputs are laid out relative to this directory
    minify: bool = False
    sourcemap: str = "none"
    splitting: bool = False
    plugins: List[Any] = field(default_factory=list)
    external: List[str] = field(default_factory=list)
    chunk_naming: str = "[name]-[hash]"
    format: str = "esm"


@dataclass
class BuildLog:
    level: str                      # 'error' | 'warning'
    message: str
    file: Optional[str] = None      # absolute path the message points at
    line: Optional[int] = None
    column: Optional[int] = None

    def __str__(self):
        if self.file:
            return f"{self.file}:{self.line or 0}:{self.column or 0}: {self.level}: {self.message}"
        return f"{self.level}: {self.message}"


@dataclass
class BuildArtifact:
    kind: str                       # entry-point | chunk | asset | sourcemap | bytecode
    path: str                       # POSIX path relative to CompileOptions.root
    content: bytes = b''
    hash: Optional[str] = None
    entry_point: Optional[str] = None   # absolute source path, entry outputs only

    def text(self) -> str:
        return content_to_text(self.content)

    def bytes(self) -> bytes:
        return self.content


@dataclass
class CompileResult:
    success: bool
    outputs: List[BuildArtifact] = field(default_factory=list)
    logs: List[BuildLog] = field(default_factory=list)

    @property
    def errors(self) -> List[BuildLog]:
        return [log for log in self.logs if log.level == 'error']


def default_compiler():
    """
    The compiler used when a build does not name one.

    Returns:
        An EsbuildEngine; when no esbuild executable is available its
        compile() reports that failure in the result
    """
    from .compilers.esbuild_engine import EsbuildEngine

    engine = EsbuildEngine()
    if not engine.available():
        logging.getLogger(__name__).warning("esbuild executable not found; script builds will fail")
    return engine
