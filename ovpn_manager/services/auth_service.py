"""
Operator access to the credential API.

Operators log in with the shared password and get a bearer session carrying
their name. Every lifecycle action taken through the API is written to the
audit trail under that name, and a bundle can be handed to its owner through
a single-use download ticket instead of the operator's session.
"""

import logging
import secrets
import threading
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Deque, Dict, List, Optional

import bcrypt
import yaml

from ovpn_manager.models.auth import AuditEntry, DownloadTicket, Session
from ovpn_manager.models.config import AuthSettings
from ovpn_manager.services.yaml_service import YAMLService

logger = logging.getLogger("ovpn_manager")
audit_logger = logging.getLogger("ovpn_manager.audit")

DEFAULT_PASSWORD = "adminadmin"

# Operator recorded for actions taken while authentication is disabled
ANONYMOUS_OPERATOR = "anonymous"


class AuthService:
    """Sessions, download tickets and the audit trail for the HTTP API."""

    def __init__(self, auth_settings: AuthSettings, config_path: Path = Path("config.yaml")):
        """
        Initialize auth service.

        Args:
            auth_settings: Authentication settings from config
            config_path: config.yaml that receives the generated password hash
        """
        self.settings = auth_settings
        self.config_path = Path(config_path)
        self._sessions: Dict[str, Session] = {}
        self._tickets: Dict[str, DownloadTicket] = {}
        self._audit: Deque[AuditEntry] = deque(maxlen=auth_settings.audit_size)
        self._lock = threading.Lock()
        self._ensure_password_hash()

    @property
    def is_enabled(self) -> bool:
        return self.settings.enabled

    # --- password ---

    def _ensure_password_hash(self) -> None:
        if self.settings.enabled and not self.settings.password_hash:
            logger.warning(f"No password hash configured, using default password '{DEFAULT_PASSWORD}'")
            self._store_password_hash(self.hash_password(DEFAULT_PASSWORD))

    def _store_password_hash(self, value: str) -> None:
        self.settings.password_hash = value
        try:
            config_data = YAMLService.load_yaml(self.config_path) if self.config_path.exists() else {}
            config_data.setdefault("auth", {})["password_hash"] = value
            YAMLService.save_yaml(self.config_path, config_data)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Password hash not persisted to {self.config_path}: {e}")

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")

    def verify_password(self, password: str) -> bool:
        if not self.settings.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), self.settings.password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification failed: {e}")
            return False

    def change_password(self, current_password: str, new_password: str, session: Optional[Session] = None) -> bool:
        """
        Replace the operator password.

        All sessions and outstanding download tickets are dropped, since a
        password change usually answers a leaked credential.
        """
        if not self.verify_password(current_password):
            return False

        self._store_password_hash(self.hash_password(new_password))
        with self._lock:
            self._sessions.clear()
            self._tickets.clear()
        self.audit(session, "password")
        logger.info("Password changed, all sessions and download tickets invalidated")
        return True

    # --- sessions ---

    def login(
        self,
        password: str,
        operator: str = "admin",
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[Session]:
        """Open a session for operator, or None if the password is wrong."""
        if not self.verify_password(password):
            audit_logger.warning(f"Failed login for operator '{operator}' from {ip_address or 'unknown'}")
            return None
        return self.create_session(operator, user_agent=user_agent, ip_address=ip_address)

    def create_session(
        self,
        operator: str = "admin",
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Session:
        now = datetime.now()
        session = Session(
            token=secrets.token_urlsafe(32),
            operator=operator,
            created_at=now,
            expires_at=now + timedelta(hours=self.settings.session_expiry_hours),
            user_agent=user_agent,
            ip_address=ip_address,
        )
        with self._lock:
            self._purge_expired(now)
            self._sessions[session.token] = session
        logger.info(f"Session opened for operator '{operator}', expires at {session.expires_at}")
        return session

    def validate_session(self, token: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if datetime.now() > session.expires_at:
                del self._sessions[token]
                return None
            return session

    def invalidate_session(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            return False
        logger.info(f"Session closed for operator '{session.operator}'")
        return True

    def _purge_expired(self, now: datetime) -> None:
        # Caller holds the lock
        for store in (self._sessions, self._tickets):
            expired = [token for token, item in store.items() if now > item.expires_at]
            for token in expired:
                del store[token]

    # --- download tickets ---

    def create_ticket(self, identity: str, serial: str, session: Optional[Session] = None) -> DownloadTicket:
        """
        Create a single-use download ticket for the bundle of identity.

        Args:
            identity: Client identity
            serial: Serial of the Issued credential the ticket is bound to
            session: Operator session creating the ticket

        Returns:
            The ticket; its token is the only secret in the download URL
        """
        now = datetime.now()
        ticket = DownloadTicket(
            token=secrets.token_urlsafe(32),
            identity=identity,
            serial=serial,
            operator=session.operator if session else ANONYMOUS_OPERATOR,
            expires_at=now + timedelta(minutes=self.settings.ticket_expiry_minutes),
        )
        with self._lock:
            self._purge_expired(now)
            self._tickets[ticket.token] = ticket
        self.audit(session, "ticket", identity, serial)
        return ticket

    def redeem_ticket(self, token: str) -> Optional[DownloadTicket]:
        """Consume a ticket; None if it is unknown, used or expired."""
        with self._lock:
            ticket = self._tickets.pop(token, None)
        if ticket is None or datetime.now() > ticket.expires_at:
            return None
        return ticket

    # --- audit ---

    def audit(
        self,
        session: Optional[Session],
        action: str,
        identity: Optional[str] = None,
        serial: Optional[str] = None,
        operator: Optional[str] = None,
    ) -> AuditEntry:
        """Record a lifecycle action under the operator of session (or an explicit operator)."""
        if operator is None:
            operator = session.operator if session else ANONYMOUS_OPERATOR
        entry = AuditEntry(
            timestamp=datetime.now(),
            operator=operator,
            action=action,
            identity=identity,
            serial=serial,
            ip_address=session.ip_address if session else None,
        )
        with self._lock:
            self._audit.append(entry)
        target = f" {identity}" if identity else ""
        target += f" (Serial: {serial})" if serial else ""
        audit_logger.info(f"{entry.operator} {action}{target}")
        return entry

    def audit_trail(self, identity: Optional[str] = None, limit: int = 100) -> List[AuditEntry]:
        """Most recent audit entries first, optionally for one identity."""
        with self._lock:
            entries = list(self._audit)
        if identity is not None:
            entries = [e for e in entries if e.identity == identity]
        return list(reversed(entries))[:limit]
