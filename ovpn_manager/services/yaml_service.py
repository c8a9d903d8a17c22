"""YAML file operations service."""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict

import yaml

from ovpn_manager.utils.file_utils import FileUtils

logger = logging.getLogger("ovpn_manager")


def _datetime_representer(dumper, data):
    return dumper.represent_scalar("tag:yaml.org,2002:timestamp", data.isoformat())


def _enum_representer(dumper, data):
    return dumper.represent_scalar("tag:yaml.org,2002:str", data.value)


class _ConfigDumper(yaml.SafeDumper):
    """Safe dumper that also writes datetimes and Enums."""


_ConfigDumper.add_representer(datetime, _datetime_representer)
_ConfigDumper.add_multi_representer(Enum, _enum_representer)


class YAMLService:
    """Service for YAML file operations."""

    @staticmethod
    def load_yaml(file_path: Path) -> Dict[str, Any]:
        """
        Load YAML file and return as dictionary.

        Args:
            file_path: Path to YAML file

        Returns:
            Parsed YAML content as dictionary

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If file is not valid YAML
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"YAML file not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
                logger.debug(f"Loaded YAML from: {file_path}")
                return data or {}
            except yaml.YAMLError as e:
                logger.error(f"Error parsing YAML file {file_path}: {e}")
                raise

    @staticmethod
    def save_yaml(file_path: Path, data: Dict[str, Any]) -> None:
        """
        Save dictionary to YAML file atomically.

        Args:
            file_path: Path to save YAML file
            data: Data to save

        Raises:
            yaml.YAMLError: If data cannot be serialized to YAML
        """
        try:
            content = yaml.dump(
                data,
                Dumper=_ConfigDumper,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
        except yaml.YAMLError as e:
            logger.error(f"Error saving YAML file {file_path}: {e}")
            raise

        FileUtils.write_file(Path(file_path), content, mode=0o600)
        logger.debug(f"Saved YAML to: {file_path}")
