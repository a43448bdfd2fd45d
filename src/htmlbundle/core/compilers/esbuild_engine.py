"""
esbuild Compiler Engine

Default script compiler. Runs the ``esbuild`` executable once for a whole
batch of entrypoints, writes into a private temporary directory and reads
the outputs back through the build metafile, so nothing reaches the real
output directory until the writer emits it.
"""

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from typing import Dict, List, Optional

from ..compiler import BuildArtifact, BuildLog, CompileOptions, CompileResult, SCRIPT_OUTPUT_EXTENSIONS
from ..registry import KIND_ASSET, KIND_CHUNK, KIND_ENTRY_POINT, KIND_SOURCEMAP
from ...utils.file_manager import read_bytes
from ...utils.hashing import short_hash


_LOG_HEADER = re.compile(r'^\s*(?:\S\s+)?\[(ERROR|WARNING)\]\s+(.*)$')
_LOG_LOCATION = re.compile(r'^\s+(\S.*?):(\d+):(\d+):\s*$')


def parse_logs(stderr: str, cwd: str) -> List[BuildLog]:
    """
    Turn esbuild's human readable diagnostics into BuildLog records.

    Each message starts with a ``[ERROR]`` or ``[WARNING]`` header; the
    first ``file:line:column:`` line after it is its location.
    """
    logs: List[BuildLog] = []
    current: Optional[BuildLog] = None
    for line in (stderr or '').splitlines():
        header = _LOG_HEADER.match(line)
        if header:
            current = BuildLog(level=header.group(1).lower(), message=header.group(2).strip())
            logs.append(current)
            continue
        location = _LOG_LOCATION.match(line)
        if location and current is not None and current.file is None:
            current.file = os.path.normpath(os.path.join(cwd, location.group(1)))
            current.line = int(location.group(2))
            current.column = int(location.group(3))
    return logs


def classify_output(rel_path: str, info: Dict) -> str:
    """
    Kind of one metafile output.

    A stylesheet extracted from a script entry carries that entry's
    ``entryPoint`` too, so only script outputs count as entry points.
    """
    if rel_path.endswith('.map'):
        return KIND_SOURCEMAP
    if os.path.splitext(rel_path)[1] not in SCRIPT_OUTPUT_EXTENSIONS:
        return KIND_ASSET
    if info.get('entryPoint'):
        return KIND_ENTRY_POINT
    return KIND_CHUNK


def parse_metafile(meta: Dict, cwd: str, outdir: str) -> List[BuildArtifact]:
    """
    Build artifacts from an esbuild metafile.

    Args:
        meta: Parsed metafile JSON
        cwd: Directory esbuild ran in; metafile paths are relative to it
        outdir: The ``--outdir`` the outputs were written to

    Returns:
        One artifact per output, content read from disk, in metafile order
    """
    artifacts: List[BuildArtifact] = []
    for output_path, info in meta.get('outputs', {}).items():
        absolute = os.path.normpath(os.path.join(cwd, output_path))
        rel_path = os.path.relpath(absolute, outdir).replace(os.sep, '/')
        kind = classify_output(rel_path, info)
        entry_point = None
        if kind == KIND_ENTRY_POINT:
            entry_point = os.path.normpath(os.path.join(cwd, info['entryPoint']))
        content = read_bytes(absolute) if os.path.isfile(absolute) else b''
        artifacts.append(BuildArtifact(
            kind=kind,
            path=rel_path,
            content=content,
            hash=short_hash(content),
            entry_point=entry_point,
        ))
    return artifacts


class EsbuildEngine:
    def __init__(self, executable: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.executable = executable or os.environ.get('ESBUILD_BINARY_PATH') or 'esbuild'

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def command(self, entrypoints: List[str], options: CompileOptions, outdir: str, metafile: str) -> List[str]:
        cmd = [self.executable, *entrypoints,
               '--bundle',
               f'--outdir={outdir}',
               f'--outbase={options.root}',
               f'--format={options.format}',
               f'--metafile={metafile}',
               '--entry-names=[dir]/[name]',
               f'--chunk-names={options.chunk_naming}',
               '--log-level=warning',
               '--color=false']
        if options.minify:
            cmd.append('--minify')
        if options.sourcemap and options.sourcemap != 'none':
            cmd.append(f'--sourcemap={options.sourcemap}')
        if options.splitting:
            cmd.append('--splitting')
        for external in options.external:
            cmd.append(f'--external:{external}')
        for plugin in options.plugins:
            # The CLI has no plugin API; string plugins are extra flags
            if isinstance(plugin, str):
                cmd.append(plugin)
            else:
                self.logger.warning(f"Ignoring non-CLI plugin for esbuild: {plugin!r}")
        return cmd

    def compile(self, entrypoints: List[str], options: CompileOptions) -> CompileResult:
        """
        Compile all entrypoints in one esbuild run.

        Args:
            entrypoints: Absolute source paths, all below ``options.root``
            options: Pass-through build options

        Returns:
            CompileResult with artifacts laid out relative to ``options.root``
        """
        if not entrypoints:
            return CompileResult(success=True)
        if not self.available():
            return CompileResult(success=False, logs=[
                BuildLog(level='error', message=f"esbuild executable '{self.executable}' not found")
            ])

        outdir = tempfile.mkdtemp(prefix='htmlbundle-esbuild-')
        metafile = os.path.join(outdir, '.htmlbundle-meta.json')
        try:
            cmd = self.command(entrypoints, options, outdir, metafile)
            self.logger.debug(f"Running: {' '.join(cmd)}")
            result = subprocess.run(
                cmd,
                cwd=options.root,
                check=False,
                capture_output=True,
                text=True,
            )
            logs = parse_logs(result.stderr, options.root)
            for log in logs:
                if log.level == 'warning':
                    self.logger.warning(f"esbuild: {log}")

            if result.returncode != 0:
                self.logger.error(f"esbuild exited with code {result.returncode}")
                if not any(log.level == 'error' for log in logs):
                    logs.append(BuildLog(level='error', message=(result.stderr or '').strip()[:1000]))
                return CompileResult(success=False, logs=logs)

            with open(metafile, 'r', encoding='utf-8') as f:
                meta = json.load(f)
            outputs = [a for a in parse_metafile(meta, options.root, outdir)
                       if not a.path.endswith('.htmlbundle-meta.json')]
            self.logger.info(f"esbuild produced {len(outputs)} output(s) for {len(entrypoints)} entrypoint(s)")
            return CompileResult(success=True, outputs=outputs, logs=logs)
        except OSError as e:
            self.logger.error(f"esbuild run failed: {e}")
            return CompileResult(success=False, logs=[BuildLog(level='error', message=str(e))])
        finally:
            shutil.rmtree(outdir, ignore_errors=True)
