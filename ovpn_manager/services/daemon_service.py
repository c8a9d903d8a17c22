"""VPN daemon control service."""

import logging
import subprocess
from typing import List, Optional

from ovpn_manager.exceptions import ToolFailureError
from ovpn_manager.models.config import DaemonSettings

logger = logging.getLogger("ovpn_manager")

SYSTEMCTL_TIMEOUT = 60


class DaemonController:
    """Signals the OpenVPN service to pick up a regenerated CRL."""

    def __init__(self, settings: DaemonSettings):
        self.settings = settings

    def _systemctl(self, action: str) -> subprocess.CompletedProcess:
        args: List[str] = [self.settings.systemctl, action, self.settings.service]
        logger.info(f"Executing: {' '.join(args)}")
        return subprocess.run(args, shell=False, capture_output=True, text=True, timeout=SYSTEMCTL_TIMEOUT)

    def _try(self, action: str) -> tuple:
        try:
            result = self._systemctl(action)
        except (OSError, subprocess.TimeoutExpired) as e:
            return False, str(e)
        return result.returncode == 0, result.stderr

    def reload(self, identity: Optional[str] = None) -> str:
        """
        Reload the daemon, falling back to a restart.

        Args:
            identity: Identity whose change triggered the reload (for messages)

        Returns:
            The action that succeeded ("reload", "restart") or "skipped"

        Raises:
            ToolFailureError: If neither reload nor restart succeeded
        """
        if not self.settings.enabled:
            logger.info("Daemon control disabled, skipping reload")
            return "skipped"

        ok, stderr = self._try("reload")
        if ok:
            logger.info(f"Reloaded {self.settings.service}")
            return "reload"

        logger.warning(f"Reload of {self.settings.service} failed, restarting: {stderr.strip()}")
        ok, stderr = self._try("restart")
        if ok:
            logger.info(f"Restarted {self.settings.service}")
            return "restart"

        logger.error(f"Restart of {self.settings.service} failed: {stderr.strip()}")
        raise ToolFailureError(
            identity,
            f"Revocation recorded but {self.settings.service} could not be reloaded; "
            "the daemon may still accept the credential until it is restarted",
            stderr,
        )
