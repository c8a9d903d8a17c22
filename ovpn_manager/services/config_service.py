"""Configuration loading service."""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from ovpn_manager.models.config import AppConfig
from ovpn_manager.services.yaml_service import YAMLService

logger = logging.getLogger("ovpn_manager")

CONFIG_ENV_VAR = "OVPN_MANAGER_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.yaml")

# Environment variables read by the server setup scripts
ENV_OVERRIDES = {
    "SERVER_NAME": ("server", "name"),
    "ORGANIZATION": ("server", "organization"),
    "ORG_UNIT": ("server", "org_unit"),
    "OPENVPN_PORT": ("network", "port"),
    "OPENVPN_PROTOCOL": ("network", "protocol"),
}


class ConfigService:
    """Loads config.yaml into AppConfig and applies environment overrides."""

    @staticmethod
    def resolve_path(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Path:
        """Explicit path, else $OVPN_MANAGER_CONFIG, else ./config.yaml."""
        environ = os.environ if environ is None else environ
        if path:
            return Path(path)
        if environ.get(CONFIG_ENV_VAR):
            return Path(environ[CONFIG_ENV_VAR])
        return DEFAULT_CONFIG_PATH

    @staticmethod
    def load(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
        """
        Load application configuration.

        A missing file yields the defaults; environment overrides apply on top.

        Args:
            path: Config file path (see resolve_path)
            environ: Environment mapping, defaults to os.environ

        Returns:
            Application configuration

        Raises:
            yaml.YAMLError: If the file is not valid YAML
            pydantic.ValidationError: If a value is invalid
        """
        environ = os.environ if environ is None else environ
        config_path = ConfigService.resolve_path(path, environ)

        if config_path.exists():
            data = YAMLService.load_yaml(config_path)
        else:
            logger.debug(f"{config_path} not found, using defaults")
            data = {}

        for var, (section, key) in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value:
                section_data = data.get(section) or {}
                section_data[key] = value.lower() if key == "protocol" else value
                data[section] = section_data

        return AppConfig(**data)
