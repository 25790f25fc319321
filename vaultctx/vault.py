"""
Vault enumeration for vaultctx.

Walks the vault tree for notes and directories, pruning configured skip
directories at any depth. Paths handed to the rest of the system are
vault-relative with forward slashes.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Union

logger = logging.getLogger(__name__)


def relative_path(vault_root: Path, path: Union[str, Path]) -> str:
    """
    Normalize a path to the vault-relative, forward-slash form.

    Absolute paths must lie under vault_root; relative paths are taken as
    already vault-relative.

    Raises:
        ValueError: If an absolute path is outside the vault
    """
    p = Path(path)
    if p.is_absolute():
        root = Path(vault_root)
        try:
            p = p.relative_to(root)
        except ValueError:
            # symlinked roots (e.g. /var -> /private/var on macOS)
            p = p.resolve().relative_to(root.resolve())
    return p.as_posix()


def is_skipped(rel_path: str, skip_dirs: Iterable[str]) -> bool:
    """True when any directory component of rel_path is a skip directory."""
    skip = set(skip_dirs)
    parts = rel_path.split("/")[:-1]
    return any(part in skip for part in parts)


def has_suffix(name: str, suffixes: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(lowered.endswith(s.lower()) for s in suffixes)


def walk_vault_dirs(vault_root: Path, skip_dirs: Iterable[str]) -> list[Path]:
    """
    Every directory of the vault not excluded by skip_dirs, root included.

    Args:
        vault_root: Vault root directory
        skip_dirs: Directory names excluded at any depth

    Returns:
        Sorted list of absolute directory paths
    """
    skip = set(skip_dirs)
    root = Path(vault_root)
    dirs = []
    for current, subdirs, _ in os.walk(root):
        subdirs[:] = sorted(d for d in subdirs if d not in skip)
        dirs.append(Path(current))
    return sorted(dirs)


def walk_vault_files(
    vault_root: Path,
    skip_dirs: Iterable[str],
    suffixes: Iterable[str] = (".md",),
) -> list[str]:
    """
    Vault-relative paths of every note under vault_root.

    Args:
        vault_root: Vault root directory
        skip_dirs: Directory names excluded at any depth
        suffixes: File suffixes that count as notes

    Returns:
        Sorted list of vault-relative paths
    """
    skip = set(skip_dirs)
    suffixes = tuple(suffixes)
    root = Path(vault_root)
    files = []
    for current, subdirs, names in os.walk(root):
        subdirs[:] = [d for d in subdirs if d not in skip]
        for name in names:
            if has_suffix(name, suffixes):
                files.append((Path(current) / name).relative_to(root).as_posix())
    logger.debug(f"Found {len(files)} notes under {root}")
    return sorted(files)
