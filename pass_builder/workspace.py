# pass_builder/workspace.py

"""
Filesystem plumbing for a build: the scratch workspace, the template copy and
the final artifact write.
"""

import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from .errors import PackagingInitError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def remove_tree(path) -> None:
    """Remove a directory tree; a missing tree is not an error."""
    if Path(path).exists():
        shutil.rmtree(path)


@contextmanager
def scratch_workspace(path) -> Iterator[Path]:
    """
    Provide a fresh scratch directory and always remove it afterwards.

    A stale workspace from an earlier run is purged first. Failure to clean
    up on exit is logged and swallowed so it never hides the build's own
    error.
    """
    path = Path(path)
    remove_tree(path)
    path.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Created scratch workspace {path}")
    try:
        yield path
    finally:
        try:
            remove_tree(path)
            logger.debug(f"Removed scratch workspace {path}")
        except OSError as e:
            logger.warning(f"Could not remove scratch workspace {path}: {e}")


def copy_template(source, destination) -> Path:
    """
    Materialize a template directory by copying it recursively.

    Files are copied as opaque bytes; directories are created as needed.

    Raises:
        PackagingInitError: If the source is not a directory
    """
    source = Path(source)
    destination = Path(destination)
    if not source.is_dir():
        raise PackagingInitError(f"Pass template directory not found: {source}")

    shutil.copytree(source, destination, dirs_exist_ok=True)
    logger.debug(f"Copied template {source} -> {destination}")
    return destination


def write_atomically(stream: BinaryIO, destination) -> Path:
    """
    Write a byte stream to ``destination`` via a temporary sibling file.

    The temporary file is renamed into place only after the whole stream was
    written, so a failed build never leaves a truncated artifact and an
    artifact from a previous run stays untouched.
    """
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_path = destination.with_name(f".{destination.name}.tmp")

    try:
        with open(temp_path, 'wb') as output:
            shutil.copyfileobj(stream, output, CHUNK_SIZE)
            output.flush()
            os.fsync(output.fileno())
        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise

    return destination
