"""
Session identity and incident lifecycle.

Identity is resolved once at the boundary into a ``ClientSession``. An
incident is reused while it is unresolved and younger than the active
window; otherwise a new one is created. Field updates are best-effort,
resolution happens exactly once.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from ..store.base import IncidentStore
from .errors import IncidentCreationFailed, PersistenceWriteFailed, StoreError, Unauthenticated
from .model import Client, ClientSession, Coach, Credentials, DEFAULT_TONE
from .utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_COACH_NAME = "Your coach"


class IncidentLifecycle:
    def __init__(
        self,
        store: IncidentStore,
        active_window_minutes: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.active_window = timedelta(minutes=active_window_minutes)
        self.clock = clock

    # ── Identity ────────────────────────────────────────────────────────────

    def resolve_identity(self, credentials: Credentials) -> ClientSession:
        """
        Resolve who is asking, in priority order: access token, cached
        client id, then an existing authenticated session.

        Raises Unauthenticated when no path yields an active client.
        """
        attempts = (
            ("token", credentials.token, self._client_by_token),
            ("cached client id", credentials.cached_client_id, self._client_by_id),
            ("auth session", credentials.auth_client_id, self._client_by_id),
        )
        for label, value, lookup in attempts:
            if not value:
                continue
            client = lookup(value)
            if client is None:
                logger.info(f"[IncidentLifecycle] {label} did not match a client")
                continue
            if client.status != "active":
                logger.info(f"[IncidentLifecycle] Client {client.id} is {client.status}")
                continue
            return ClientSession(
                client_id=client.id,
                coach_id=client.coach_id,
                token=credentials.token if label == "token" else client.access_token,
            )
        raise Unauthenticated("No valid token, cached client id or session")

    def _client_by_token(self, token: str) -> Optional[Client]:
        try:
            return self.store.find_client_by_token(token)
        except StoreError as e:
            logger.warning(f"[IncidentLifecycle] Token lookup failed: {e}")
            return None

    def _client_by_id(self, client_id: str) -> Optional[Client]:
        try:
            return self.store.get_client(client_id)
        except StoreError as e:
            logger.warning(f"[IncidentLifecycle] Client lookup failed: {e}")
            return None

    def load_profile(self, session: ClientSession) -> Tuple[Optional[Client], Coach]:
        """Client record and coach persona; the coach falls back to a default."""
        client = self._client_by_id(session.client_id)
        coach = None
        try:
            coach = self.store.get_coach(session.coach_id)
        except StoreError as e:
            logger.warning(f"[IncidentLifecycle] Coach lookup failed: {e}")
        if coach is None:
            coach = Coach(id=session.coach_id, full_name=DEFAULT_COACH_NAME, tone_preset=DEFAULT_TONE)
        return client, coach

    # ── Incidents ───────────────────────────────────────────────────────────

    def ensure_incident(self, client_id: str, kind: str) -> str:
        """Return the active incident id for (client, kind), creating one if needed."""
        now = self.clock()
        try:
            active = self.store.find_active_incident(client_id, kind, since=now - self.active_window)
        except StoreError as e:
            logger.warning(f"[IncidentLifecycle] Active incident lookup failed: {e}")
            active = None

        if active is not None:
            logger.info(f"[IncidentLifecycle] Reusing {kind} incident {active.id}")
            return active.id

        try:
            incident = self.store.create_incident(client_id, kind, now)
        except StoreError as e:
            raise IncidentCreationFailed(f"Could not create {kind} incident: {e}") from e
        logger.info(f"[IncidentLifecycle] Created {kind} incident {incident.id}")
        return incident.id

    def update_incident(self, incident_id: Optional[str], fields: Dict[str, Any]) -> bool:
        """Sparse, best-effort patch. Returns False instead of raising."""
        if not incident_id:
            logger.warning("[IncidentLifecycle] update_incident called without an incident id")
            return False
        patch = {k: v for k, v in fields.items() if v is not None}
        if not patch:
            return True
        try:
            self.store.update_incident(incident_id, patch)
        except StoreError as e:
            error = PersistenceWriteFailed(f"Update of {incident_id} failed: {e}")
            logger.warning(f"[IncidentLifecycle] {type(error).__name__}: {error}")
            return False
        return True

    def mark_resolved(self, incident_id: Optional[str]) -> bool:
        """Set resolved_at once. Returns True only for the call that resolved it."""
        if not incident_id:
            return False
        try:
            incident = self.store.get_incident(incident_id)
        except StoreError as e:
            logger.warning(f"[IncidentLifecycle] Could not load {incident_id}: {e}")
            return False
        if incident is None:
            logger.warning(f"[IncidentLifecycle] Incident {incident_id} not found")
            return False
        if incident.is_resolved:
            logger.info(f"[IncidentLifecycle] Incident {incident_id} already resolved")
            return False
        return self.update_incident(incident_id, {"resolved_at": self.clock()})
