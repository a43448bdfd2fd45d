"""
Shared fixtures: temporary site trees and a fake script compiler that
implements the compiler contract without a JavaScript toolchain.
"""

import os
import re
import sys
from collections import Counter
from pathlib import Path

import pytest

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from htmlbundle.core.compiler import BuildArtifact, BuildLog, CompileResult
from htmlbundle.utils.hashing import short_hash
from htmlbundle.utils.paths import relative_reference


IMPORT_LINE = re.compile(r'^[ \t]*import\s+(?:[^;\n]*?\s+from\s+)?(["\'])([^"\'\n]+)\1;?[ \t]*$', re.M)


def _read(path):
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def _resolve(importer, literal):
    if not literal.startswith(('./', '../', '/')):
        return None
    base = literal if literal.startswith('/') else os.path.join(os.path.dirname(importer), literal)
    base = os.path.normpath(base)
    for candidate in (base, base + '.ts', base + '.js'):
        if os.path.isfile(candidate):
            return candidate
    return None


class FakeCompiler:
    """
    Bundles by splicing imported modules into the importer.

    With splitting enabled, a module imported by two or more entrypoints is
    emitted once as a chunk and the importers keep an import of it. Any
    entrypoint containing ``SYNTAX ERROR`` fails the whole batch.
    """

    def __init__(self):
        self.calls = []

    def compile(self, entrypoints, options):
        self.calls.append(list(entrypoints))
        logs = [BuildLog(level='error', message='Unexpected token', file=e, line=1, column=1)
                for e in entrypoints if 'SYNTAX ERROR' in _read(e)]
        if logs:
            return CompileResult(success=False, logs=logs)

        imports = {}
        counts = Counter()
        for entry in entrypoints:
            targets = [_resolve(entry, m.group(2)) for m in IMPORT_LINE.finditer(_read(entry))]
            imports[entry] = targets
            counts.update(t for t in set(targets) if t)

        outputs = []
        chunks = {}
        if options.splitting:
            for target in sorted(t for t, n in counts.items() if n > 1):
                content = _read(target)
                stem = os.path.splitext(os.path.basename(target))[0]
                rel = f"{stem}-{short_hash(content)}.js"
                chunks[target] = rel
                outputs.append(BuildArtifact(kind='chunk', path=rel, content=content.encode('utf-8'),
                                             hash=short_hash(content)))

        for entry in entrypoints:
            rel_entry = os.path.splitext(os.path.relpath(entry, options.root))[0].replace(os.sep, '/') + '.js'
            entry_dir = os.path.dirname(rel_entry)

            def splice(match, entry=entry, entry_dir=entry_dir):
                target = _resolve(entry, match.group(2))
                if target is None:
                    return match.group(0)
                if target in chunks:
                    q = match.group(1)
                    new = relative_reference(chunks[target], entry_dir)
                    return match.group(0).replace(q + match.group(2) + q, q + new + q)
                return f"/* {os.path.basename(target)} */\n{_read(target)}"

            text = IMPORT_LINE.sub(splice, _read(entry))
            if options.sourcemap in ('linked', 'external'):
                map_rel = rel_entry + '.map'
                if options.sourcemap == 'linked':
                    text += f"\n//# sourceMappingURL={os.path.basename(map_rel)}\n"
                map_content = b'{"version":3,"sources":[],"mappings":""}'
                outputs.append(BuildArtifact(kind='sourcemap', path=map_rel, content=map_content,
                                             hash=short_hash(map_content)))
            content = text.encode('utf-8')
            outputs.append(BuildArtifact(kind='entry-point', path=rel_entry, content=content,
                                         hash=short_hash(content), entry_point=entry))
        return CompileResult(success=True, outputs=outputs)


@pytest.fixture
def fake_compiler():
    return FakeCompiler()


@pytest.fixture
def make_site(tmp_path):
    """Write a dict of relative path -> text (or bytes) below tmp_path/site."""
    root = tmp_path / "site"

    def make(files):
        for rel, content in files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding='utf-8')
        return root

    return make


@pytest.fixture
def outdir(tmp_path):
    return tmp_path / "dist"
