"""
Preprocessor hook support.

A caller-supplied function runs once after scanning with a Processor handle:
it can read every discovered file and replace contents or add new files
before scripts and stylesheets are built.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from .registry import Content, FileDetails, FileRegistry, KIND_CHUNK
from ..utils.paths import file_extension


class ProcessorFile:
    """One registry entry as seen by a preprocessor; ``content`` is read on access."""

    def __init__(self, registry: FileRegistry, path: str):
        self._registry = registry
        self.path = path
        self.extension = file_extension(path)

    @property
    def content(self) -> str:
        return self._registry.read_text(self.path)

    def __repr__(self):
        return f"ProcessorFile({self.path!r})"


class Processor:
    def __init__(self, registry: FileRegistry):
        self.registry = registry
        self.logger = logging.getLogger(__name__)
        self.added: List[str] = []

    def get_files(self) -> List[ProcessorFile]:
        return [ProcessorFile(self.registry, key) for key in self.registry.keys()]

    # Same spelling as the JavaScript plugin API
    getFiles = get_files

    def write_file(self, path: str, content: Content):
        """
        Replace the content of a known file or add a new one.

        New files are registered as chunks: they are emitted as they are
        unless something references them.
        """
        key = FileRegistry.normalize(path)
        if key in self.registry:
            self.registry.set_content(key, content)
            self.logger.debug(f"Preprocessor replaced {key}")
            return
        self.registry.register(key, FileDetails(kind=KIND_CHUNK, content=content))
        self.added.append(key)
        self.logger.debug(f"Preprocessor added {key}")

    writeFile = write_file


def run_preprocessor(hook: Optional[Callable[[Processor], Any]], registry: FileRegistry) -> Optional[Processor]:
    """
    Run a preprocessor hook against the registry.

    The hook may be a plain function or a coroutine function; a returned
    awaitable is run to completion before the pipeline continues. When the
    caller is itself running an event loop, the awaitable runs on a fresh
    loop in a worker thread, so it must not depend on objects bound to the
    caller's loop.
    """
    if hook is None:
        return None
    processor = Processor(registry)
    result = hook(processor)
    if inspect.isawaitable(result):
        _run_to_completion(result)
    return processor


async def _await(awaitable):
    return await awaitable


def _run_to_completion(awaitable):
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_await(awaitable))
    with ThreadPoolExecutor(max_workers=1) as ex:
        return ex.submit(asyncio.run, _await(awaitable)).result()
