"""Utility modules."""

from .file_utils import FileUtils
from .logger import setup_logger
from .validators import validate_identity

__all__ = ["FileUtils", "validate_identity", "setup_logger"]
