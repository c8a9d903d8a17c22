"""File system utilities."""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger("ovpn_manager")


class FileUtils:
    """Utility class for file operations."""

    @staticmethod
    def ensure_directory(path: Path, mode: Optional[int] = None) -> None:
        """
        Ensure directory exists, create if not.

        Args:
            path: Directory path to ensure
            mode: Permission bits applied when the directory is created
        """
        if mode is not None and not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            os.chmod(path, mode)
        else:
            path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory exists: {path}")

    @staticmethod
    def delete_directory(path: Path, ignore_errors: bool = False) -> None:
        """
        Delete directory and all contents.

        Args:
            path: Directory path to delete
            ignore_errors: Whether to ignore errors during deletion
        """
        if path.exists():
            shutil.rmtree(path, ignore_errors=ignore_errors)
            logger.info(f"Deleted directory: {path}")

    @staticmethod
    def move_to_trash(path: Path, trash_dir: Optional[Path] = None) -> Path:
        """
        Move a file or directory into a _trash folder with a timestamp suffix.

        Args:
            path: Path to move to trash
            trash_dir: Trash location, defaults to a _trash folder next to path

        Returns:
            Path to the trashed entry

        Raises:
            ValueError: If path does not exist
        """
        if not path.exists():
            raise ValueError(f"Path not found: {path}")

        trash_dir = trash_dir or path.parent / "_trash"
        FileUtils.ensure_directory(trash_dir, mode=0o700)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        dest = trash_dir / f"{path.name}_{timestamp}"
        shutil.move(str(path), str(dest))
        logger.info(f"Moved to trash: {path} -> {dest}")
        return dest

    @staticmethod
    def read_file(path: Path) -> str:
        """
        Read file contents as string.

        Args:
            path: File path to read

        Returns:
            File contents as string
        """
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    @staticmethod
    def read_binary_file(path: Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def write_file(path: Path, content: str, mode: int = 0o644) -> None:
        """
        Atomically write string content to file.

        The content goes to a temporary file in the same directory which then
        replaces the target, so readers see either the old or the new content.

        Args:
            path: File path to write
            content: Content to write
            mode: Permission bits of the resulting file
        """
        FileUtils.write_binary_file(path, content.encode("utf-8"), mode=mode)

    @staticmethod
    def write_binary_file(path: Path, content: bytes, mode: int = 0o644) -> None:
        """
        Atomically write binary content to file.

        Args:
            path: File path to write
            content: Binary content to write
            mode: Permission bits of the resulting file
        """
        FileUtils.ensure_directory(path.parent)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Wrote file: {path}")

    @staticmethod
    def write_private_file(path: Path, content: str) -> None:
        """Atomically write content readable and writable by the owner only (0600)."""
        FileUtils.write_file(path, content, mode=0o600)

    @staticmethod
    def copy_file(src: Path, dst: Path, mode: int = 0o644) -> None:
        """
        Atomically copy file from source to destination.

        Args:
            src: Source file path
            dst: Destination file path
            mode: Permission bits of the copy
        """
        FileUtils.write_binary_file(dst, FileUtils.read_binary_file(src), mode=mode)
        logger.debug(f"Copied file: {src} -> {dst}")

    @staticmethod
    def list_files(path: Path, pattern: str = "*") -> list[Path]:
        """
        List all files matching pattern in given path.

        Args:
            path: Path to search
            pattern: Glob pattern to match

        Returns:
            Sorted list of file paths
        """
        if not path.exists():
            return []
        return sorted(p for p in path.glob(pattern) if p.is_file())
