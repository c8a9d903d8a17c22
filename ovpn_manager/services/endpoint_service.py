"""Public endpoint discovery service."""

import ipaddress
import logging
import re
from typing import Optional

import requests

from ovpn_manager.exceptions import ResolutionError
from ovpn_manager.models.bundle import Endpoint
from ovpn_manager.models.config import NetworkSettings

logger = logging.getLogger("ovpn_manager")

HOSTNAME_PATTERN = re.compile(r"^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)*[A-Za-z0-9-]{1,63}$")


class EndpointResolver:
    """Resolves the publicly reachable server address embedded in client bundles."""

    def __init__(self, settings: NetworkSettings, session: Optional[requests.Session] = None):
        """
        Initialize resolver.

        Args:
            settings: Network settings (static host, port, protocol, discovery URL)
            session: Optional requests session, mainly for tests
        """
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "ovpn-manager/1.0"})

    @staticmethod
    def is_valid_host(host: str) -> bool:
        """Check that host is an IP address or a syntactically valid hostname."""
        try:
            ipaddress.ip_address(host)
            return True
        except ValueError:
            return bool(HOSTNAME_PATTERN.match(host))

    def resolve(self, identity: Optional[str] = None) -> Endpoint:
        """
        Resolve the server endpoint.

        A configured public_host wins; otherwise the discovery URL is queried
        with a bounded timeout.

        Args:
            identity: Identity the endpoint is resolved for, used in error messages

        Returns:
            Endpoint with host, port and protocol

        Raises:
            ResolutionError: If no usable host could be determined
        """
        host = self.settings.public_host
        if host:
            logger.debug(f"Using configured public host {host}")
        else:
            host = self._discover(identity)

        if not self.is_valid_host(host):
            raise ResolutionError(identity, f"Resolved endpoint '{host}' is not a valid host")

        endpoint = Endpoint(host=host, port=self.settings.port, protocol=self.settings.protocol)
        logger.info(f"Resolved server endpoint {endpoint}")
        return endpoint

    def _discover(self, identity: Optional[str]) -> str:
        url = self.settings.discovery_url
        try:
            response = self.session.get(url, timeout=self.settings.discovery_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Endpoint discovery via {url} failed: {e}")
            raise ResolutionError(identity, f"Endpoint discovery via {url} failed: {e}")

        host = response.text.strip()
        if not host:
            raise ResolutionError(identity, f"Endpoint discovery via {url} returned an empty response")
        return host
