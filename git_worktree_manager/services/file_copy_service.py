"""Copying of ``copy_files`` entries into new worktrees."""

import glob
import os
import shutil
from typing import List, Sequence

from git_worktree_manager.exceptions import PermissionDenied
from git_worktree_manager.logging_config import get_logger

logger = get_logger(__name__)


class FileCopyService:
    """Copies files, directories and glob matches from the main checkout."""

    def copy_patterns(self, patterns: Sequence[str], source_root: str, dest_root: str) -> List[str]:
        """Copy every entry matched by ``patterns`` from ``source_root`` to ``dest_root``.

        Patterns are relative to ``source_root``; entries that match nothing are
        skipped. Directory layout is preserved.

        Returns:
            Relative paths that were copied

        Raises:
            PermissionDenied: if a file cannot be read or written
        """
        copied = []
        source_root = os.path.realpath(source_root)
        for pattern in patterns:
            matches = self._expand(pattern, source_root)
            if not matches:
                logger.debug(f"copy_files entry '{pattern}' matched nothing, skipping")
                continue
            for source in matches:
                relative = os.path.relpath(source, source_root)
                if relative == os.curdir or relative.startswith(os.pardir):
                    logger.warning(f"copy_files entry '{pattern}' points outside the repository, skipping")
                    continue
                self._copy(source, os.path.join(dest_root, relative))
                copied.append(relative)
        return copied

    @staticmethod
    def _expand(pattern: str, source_root: str) -> List[str]:
        full = os.path.join(source_root, pattern)
        if any(c in pattern for c in "*?["):
            return sorted(glob.glob(full, recursive=True))
        return [full] if os.path.lexists(full) else []

    @staticmethod
    def _copy(source: str, destination: str):
        try:
            os.makedirs(os.path.dirname(destination), exist_ok=True)
            if os.path.isdir(source) and not os.path.islink(source):
                shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
            else:
                shutil.copy2(source, destination, follow_symlinks=False)
            logger.debug(f"Copied {source} -> {destination}")
        except PermissionError as e:
            raise PermissionDenied(e.filename or destination, e.strerror) from e
