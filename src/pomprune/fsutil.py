"""File helpers shared by the pipelines: descriptor walking, copying, comparing, unpacking."""

from __future__ import annotations

import difflib
import logging
import os
import re
import shutil
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from pomprune.errors import DescriptorIOError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

POM_FILE = "pom.xml"
_SKIPPED_DIRS = frozenset({"target", "node_modules"})
_SELF_CLOSING_RE = re.compile(r"\s+/>")


def read_text(path: Path, encoding: str = "utf-8") -> str:
    try:
        return path.read_text(encoding=encoding)
    except OSError as exc:
        raise DescriptorIOError(path, f"cannot read: {exc.strerror or exc}") from exc


def write_if_changed(path: Path, text: str, encoding: str = "utf-8") -> bool:
    """Write *text* unless the file already holds exactly that content.

    Returns True when the file was written.
    """
    if path.is_file() and read_text(path, encoding) == text:
        logger.debug("Unchanged %s", path)
        return False
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding=encoding, newline="") as fh:
            fh.write(text)
    except OSError as exc:
        raise DescriptorIOError(path, f"cannot write: {exc.strerror or exc}") from exc
    logger.info("Updated %s", path)
    return True


def visit_poms(root: Path) -> Iterator[Path]:
    """Yield every ``pom.xml`` below *root*, skipping build output and hidden dirs."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in _SKIPPED_DIRS and not d.startswith(".")
        )
        if POM_FILE in filenames:
            yield Path(dirpath) / POM_FILE


def copy_poms(source_root: Path, dest_root: Path, poms: Iterable[Path] | None = None) -> int:
    """Copy descriptors to the same relative location under *dest_root*."""
    count = 0
    for pom in poms if poms is not None else visit_poms(source_root):
        target = dest_root / pom.relative_to(source_root)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(pom, target)
        except OSError as exc:
            raise DescriptorIOError(pom, f"cannot copy to {target}: {exc}") from exc
        count += 1
    logger.debug("Copied %d descriptors to %s", count, dest_root)
    return count


def delete_directory(path: Path) -> bool:
    """Remove *path* recursively; False when it did not exist."""
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise DescriptorIOError(path, f"cannot delete: {exc.strerror or exc}") from exc
    logger.debug("Deleted %s", path)
    return True


def normalized_lines(text: str) -> list[str]:
    """Split *text* into lines with ``<a />`` and ``<a/>`` treated alike."""
    return _SELF_CLOSING_RE.sub("/>", text).splitlines()


def diff_files(expected: Path, actual: Path, encoding: str = "utf-8") -> list[str]:
    """Changed lines between two descriptors, ``<a />`` and ``<a/>`` treated alike.

    A missing *actual* file counts as empty.  Returns an empty list when the
    files agree.
    """
    old = normalized_lines(read_text(expected, encoding))
    new = normalized_lines(read_text(actual, encoding)) if actual.is_file() else []
    return [
        line
        for line in difflib.unified_diff(old, new, lineterm="", n=0)
        if not line.startswith(("---", "+++"))
    ]


def unpack_zip(archive: Path, dest: Path) -> int:
    """Extract *archive* below *dest*; returns the number of files written."""
    count = 0
    root = dest.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                target = (dest / info.filename).resolve()
                if root != target and root not in target.parents:
                    msg = f"entry {info.filename} escapes {dest}"
                    raise DescriptorIOError(archive, msg)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, target.open("wb") as out:
                    shutil.copyfileobj(src, out)
                count += 1
    except (OSError, zipfile.BadZipFile) as exc:
        raise DescriptorIOError(archive, f"could not extract to {dest}: {exc}") from exc
    logger.debug("Extracted %d files from %s to %s", count, archive, dest)
    return count
