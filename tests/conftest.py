"""Pytest configuration and shared fixtures."""

import logging
import shutil
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ovpn_manager.models.config import (
    AppConfig,
    AuthSettings,
    DaemonSettings,
    LoggingSettings,
    NetworkSettings,
    PathSettings,
    PKISettings,
    StoreSettings,
)
from ovpn_manager.services.auth_service import AuthService
from ovpn_manager.services.container import build_services
from ovpn_manager.services.yaml_service import YAMLService


def make_config(root: Path) -> AppConfig:
    """Configuration rooted in a temporary directory, native toolkit, daemon control off."""
    return AppConfig(
        paths=PathSettings(
            pki=str(root / "easy-rsa" / "pki"),
            easyrsa=str(root / "easy-rsa"),
            client_configs=str(root / "client-configs"),
            tls_auth_key=str(root / "ta.key"),
            crl_publish=str(root / "openvpn" / "crl.pem"),
            logs=str(root / "logs"),
        ),
        pki=PKISettings(backend="native"),
        network=NetworkSettings(public_host="vpn.example.com"),
        daemon=DaemonSettings(enabled=False),
        store=StoreSettings(lock_timeout=10.0, lock_retries=3, lock_backoff=0.05),
        logging=LoggingSettings(file=str(root / "logs" / "test.log")),
        auth=AuthSettings(enabled=False),
    )


@pytest.fixture(autouse=True)
def isolated_logger():
    """Keep CLI invocations from binding stream handlers to the runner's temporary streams."""
    logger = logging.getLogger("ovpn_manager")
    handler = logging.NullHandler()
    logger.addHandler(handler)
    yield
    logger.removeHandler(handler)


@pytest.fixture(scope="session")
def pristine_root(tmp_path_factory):
    """Initialize one authority per test session; tests get copies of it."""
    root = tmp_path_factory.mktemp("pristine")
    services = build_services(make_config(root), require_initialized=False)
    services.authority.initialize()
    return root


@pytest.fixture
def test_root(tmp_path, pristine_root):
    """Fresh copy of the initialized authority for each test."""
    root = tmp_path / "vpn"
    shutil.copytree(pristine_root, root)
    return root


@pytest.fixture
def fresh_config(tmp_path):
    """Configuration for an authority that has not been initialized yet."""
    return make_config(tmp_path / "fresh")


@pytest.fixture
def test_config(test_root):
    """Application configuration for the per-test authority."""
    return make_config(test_root)


@pytest.fixture
def config_file(test_root, test_config):
    """The per-test configuration written to a config.yaml."""
    path = test_root / "config.yaml"
    YAMLService.save_yaml(path, test_config.model_dump())
    return path


@pytest.fixture
def services(test_config):
    """All lifecycle services over the per-test authority."""
    return build_services(test_config)


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def issued_alice(services):
    """Issue 'alice' and build her bundle."""
    return services.provision("alice")


@pytest.fixture
def auth_service(test_root):
    """Create auth service instance with auth enabled for testing."""
    auth_settings = AuthSettings(enabled=True, session_expiry_hours=24)
    return AuthService(auth_settings, config_path=test_root / "test_config.yaml")


@pytest.fixture
def auth_token(auth_service):
    """Get a valid auth token for testing."""
    return auth_service.create_session("ops").token


@pytest.fixture
def auth_headers(auth_token):
    """Get auth headers for API requests."""
    return {"Authorization": f"Bearer {auth_token}"}


def _make_client(test_config, auth_service):
    from main import app
    from ovpn_manager.api.dependencies import get_auth_service, get_config, reset_auth_service

    reset_auth_service()
    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    return app, TestClient(app)


@pytest.fixture
def client(test_config, test_root):
    """Create FastAPI test client over the per-test authority with auth disabled."""
    from ovpn_manager.api.dependencies import reset_auth_service

    disabled_auth_service = AuthService(AuthSettings(enabled=False), config_path=test_root / "test_config.yaml")
    app, test_client = _make_client(test_config, disabled_auth_service)
    yield test_client

    # Clean up
    app.dependency_overrides.clear()
    reset_auth_service()


@pytest.fixture
def client_with_auth(test_config, auth_service):
    """Create FastAPI test client with authentication enabled."""
    from ovpn_manager.api.dependencies import reset_auth_service

    app, test_client = _make_client(test_config, auth_service)
    yield test_client

    # Clean up
    app.dependency_overrides.clear()
    reset_auth_service()
