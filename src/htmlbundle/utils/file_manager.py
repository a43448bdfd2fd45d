"""
File Management Utilities

This module is the filesystem boundary of the build: reading source bytes,
writing final outputs below the output directory (creating parent
directories as needed) and tidying up empty directories afterwards.
"""

import os
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union


class FileManager:
    """
    Writes build outputs below a single output directory.

    Every output path is written at most once per FileManager; a second
    write to the same final path is skipped and logged.
    """

    def __init__(self, base_output_dir: str = "dist"):
        """
        Initialize the file manager.

        Args:
            base_output_dir: Directory all outputs are written below
        """
        self.base_output_dir = Path(base_output_dir).absolute()
        self.logger = logging.getLogger(__name__)
        self.written: Dict[str, str] = {}

    def _create_directories(self, target: Path):
        target.parent.mkdir(parents=True, exist_ok=True)

    def output_path(self, rel_path: str) -> str:
        """Absolute path of an output given its path relative to the output directory."""
        return str(self.base_output_dir / rel_path)

    def write(self, rel_path: str, content: Union[str, bytes]) -> Optional[str]:
        """
        Write one output file.

        Args:
            rel_path: POSIX path relative to the output directory
            content: Text (written as UTF-8) or raw bytes

        Returns:
            Absolute path of the written file, or None if the path was
            already written during this build
        """
        target = Path(self.output_path(rel_path))
        key = str(target)
        if key in self.written:
            self.logger.warning(f"Skipping duplicate output: {rel_path}")
            return None

        self._create_directories(target)
        if isinstance(content, str):
            with open(target, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
        else:
            with open(target, 'wb') as f:
                f.write(content)

        self.written[key] = rel_path
        self.logger.debug(f"Wrote {os.path.getsize(target)} bytes: {rel_path}")
        return key

    def get_written_files(self) -> List[str]:
        return list(self.written.keys())

    def cleanup_empty_directories(self):
        """Remove empty directories left below the output directory."""
        if not self.base_output_dir.exists():
            return
        # Deepest first so parents emptied by the pass are removed too
        directories = sorted(
            (p for p in self.base_output_dir.glob('**/') if p != self.base_output_dir),
            key=lambda p: len(p.parts),
            reverse=True,
        )
        for directory in directories:
            try:
                if directory.is_dir() and not any(directory.iterdir()):
                    directory.rmdir()
                    self.logger.debug(f"Removed empty directory: {directory}")
            except OSError as e:
                self.logger.error(f"Error during cleanup of {directory}: {e}")


def read_bytes(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def read_text(path: str) -> str:
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read()
