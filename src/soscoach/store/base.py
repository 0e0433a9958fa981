"""
Incident store interface.

The store owns incidents, their message logs, client/coach records and the
intervention catalog. Implementations raise ``StoreError`` when a read or
write is rejected; callers decide whether that is fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.model import (
    Client,
    ClientIntervention,
    Coach,
    Incident,
    Intervention,
    Message,
)


class IncidentStore(ABC):
    # ── Incidents ───────────────────────────────────────────────────────────

    @abstractmethod
    def create_incident(self, client_id: str, kind: str, now: datetime) -> Incident:
        ...

    @abstractmethod
    def find_active_incident(
        self, client_id: str, kind: str, since: datetime
    ) -> Optional[Incident]:
        """Most recent unresolved incident created at or after ``since``."""

    @abstractmethod
    def get_incident(self, incident_id: str) -> Optional[Incident]:
        ...

    @abstractmethod
    def update_incident(self, incident_id: str, fields: Dict[str, Any]) -> Incident:
        """Sparse patch; raises StoreError when the incident does not exist."""

    @abstractmethod
    def list_incidents(self, client_id: str, kind: str, limit: int = 50) -> List[Incident]:
        """Most recent first."""

    # ── Messages ────────────────────────────────────────────────────────────

    @abstractmethod
    def append_message(self, message: Message) -> Message:
        ...

    @abstractmethod
    def list_messages(self, kind: str, incident_id: str) -> List[Message]:
        """Ordered by timestamp ascending."""

    # ── People ──────────────────────────────────────────────────────────────

    @abstractmethod
    def find_client_by_token(self, token: str) -> Optional[Client]:
        ...

    @abstractmethod
    def get_client(self, client_id: str) -> Optional[Client]:
        ...

    @abstractmethod
    def get_coach(self, coach_id: str) -> Optional[Coach]:
        ...

    @abstractmethod
    def add_coach(self, coach: Coach) -> Coach:
        ...

    @abstractmethod
    def add_client(self, client: Client) -> Client:
        ...

    # ── Interventions ───────────────────────────────────────────────────────

    @abstractmethod
    def add_intervention(self, intervention: Intervention) -> Intervention:
        ...

    @abstractmethod
    def assign_intervention(self, assignment: ClientIntervention) -> ClientIntervention:
        ...

    @abstractmethod
    def list_client_interventions(
        self, client_id: str, kind: str, active_only: bool = True
    ) -> List[Intervention]:
        """Catalog interventions of ``kind`` joined to the client's assignments."""

    @abstractmethod
    def list_client_intervention_records(
        self, client_id: str, kind: str
    ) -> List[ClientIntervention]:
        ...

    @abstractmethod
    def record_intervention_use(
        self, client_id: str, intervention_id: str, kind: str, when: datetime
    ) -> None:
        ...

    @abstractmethod
    def record_intervention_rating(
        self, client_id: str, intervention_id: str, kind: str, rating: int
    ) -> None:
        ...


def blend_rating(previous: Optional[int], rating: int) -> int:
    """Fold a new 1-10 rating into the stored effectiveness rating."""
    if previous is None:
        return rating
    return int(round((previous + rating) / 2))
