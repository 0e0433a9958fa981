"""
In-memory incident store. Used for the demo server and for tests.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import StoreError
from ..core.model import (
    INCIDENT_CLASSES,
    Client,
    ClientIntervention,
    Coach,
    Incident,
    Intervention,
    Message,
)
from ..core.utils import day_of_week, new_id, time_of_day_stamp
from .base import IncidentStore, blend_rating


class InMemoryIncidentStore(IncidentStore):
    """
    Keeps every record in plain dicts.

    Reads return copies so callers never mutate stored state behind the
    store's back.
    """

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}
        self._messages: Dict[Tuple[str, str], List[Message]] = {}
        self._clients: Dict[str, Client] = {}
        self._coaches: Dict[str, Coach] = {}
        self._interventions: Dict[str, Intervention] = {}
        self._assignments: Dict[Tuple[str, str], ClientIntervention] = {}

    # ── Incidents ───────────────────────────────────────────────────────────

    def create_incident(self, client_id: str, kind: str, now: datetime) -> Incident:
        cls = INCIDENT_CLASSES.get(kind)
        if cls is None:
            raise StoreError(f"Unknown incident kind: {kind}")
        incident = cls(
            id=new_id(),
            client_id=client_id,
            created_at=now,
            day_of_week=day_of_week(now),
            time_of_day=time_of_day_stamp(now),
        )
        self._incidents[incident.id] = incident
        return copy.deepcopy(incident)

    def find_active_incident(
        self, client_id: str, kind: str, since: datetime
    ) -> Optional[Incident]:
        matches = [
            inc for inc in self._incidents.values()
            if inc.client_id == client_id
            and inc.kind == kind
            and inc.resolved_at is None
            and inc.created_at >= since
        ]
        if not matches:
            return None
        matches.sort(key=lambda inc: inc.created_at, reverse=True)
        return copy.deepcopy(matches[0])

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        return copy.deepcopy(incident) if incident else None

    def update_incident(self, incident_id: str, fields: Dict[str, Any]) -> Incident:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise StoreError(f"Incident {incident_id} not found")
        incident.apply(fields)
        return copy.deepcopy(incident)

    def list_incidents(self, client_id: str, kind: str, limit: int = 50) -> List[Incident]:
        matches = [
            inc for inc in self._incidents.values()
            if inc.client_id == client_id and inc.kind == kind
        ]
        matches.sort(key=lambda inc: inc.created_at, reverse=True)
        return [copy.deepcopy(inc) for inc in matches[:limit]]

    # ── Messages ────────────────────────────────────────────────────────────

    def append_message(self, message: Message) -> Message:
        if message.incident_id not in self._incidents:
            raise StoreError(f"Incident {message.incident_id} not found")
        if not message.id:
            message.id = new_id()
        self._messages.setdefault((message.kind, message.incident_id), []).append(
            copy.deepcopy(message)
        )
        return message

    def list_messages(self, kind: str, incident_id: str) -> List[Message]:
        messages = self._messages.get((kind, incident_id), [])
        ordered = sorted(
            messages,
            key=lambda m: m.created_at.timestamp() if m.created_at else 0.0,
        )
        return [copy.deepcopy(m) for m in ordered]

    # ── People ──────────────────────────────────────────────────────────────

    def find_client_by_token(self, token: str) -> Optional[Client]:
        for client in self._clients.values():
            if client.access_token and client.access_token == token:
                return copy.deepcopy(client)
        return None

    def get_client(self, client_id: str) -> Optional[Client]:
        client = self._clients.get(client_id)
        return copy.deepcopy(client) if client else None

    def get_coach(self, coach_id: str) -> Optional[Coach]:
        coach = self._coaches.get(coach_id)
        return copy.deepcopy(coach) if coach else None

    def add_coach(self, coach: Coach) -> Coach:
        self._coaches[coach.id] = copy.deepcopy(coach)
        return coach

    def add_client(self, client: Client) -> Client:
        self._clients[client.id] = copy.deepcopy(client)
        return client

    # ── Interventions ───────────────────────────────────────────────────────

    def add_intervention(self, intervention: Intervention) -> Intervention:
        self._interventions[intervention.id] = copy.deepcopy(intervention)
        return intervention

    def assign_intervention(self, assignment: ClientIntervention) -> ClientIntervention:
        if assignment.intervention_id not in self._interventions:
            raise StoreError(f"Intervention {assignment.intervention_id} not found")
        key = (assignment.client_id, assignment.intervention_id)
        self._assignments[key] = copy.deepcopy(assignment)
        return assignment

    def list_client_interventions(
        self, client_id: str, kind: str, active_only: bool = True
    ) -> List[Intervention]:
        result = []
        for (cid, iid), assignment in self._assignments.items():
            if cid != client_id or assignment.kind != kind:
                continue
            if active_only and not assignment.active:
                continue
            intervention = self._interventions.get(iid)
            if intervention is None or intervention.kind != kind:
                continue
            if active_only and not intervention.active:
                continue
            result.append(copy.deepcopy(intervention))
        return result

    def list_client_intervention_records(
        self, client_id: str, kind: str
    ) -> List[ClientIntervention]:
        return [
            copy.deepcopy(a) for (cid, _), a in self._assignments.items()
            if cid == client_id and a.kind == kind
        ]

    def _assignment(self, client_id: str, intervention_id: str) -> ClientIntervention:
        assignment = self._assignments.get((client_id, intervention_id))
        if assignment is None:
            raise StoreError(
                f"Intervention {intervention_id} is not assigned to client {client_id}"
            )
        return assignment

    def record_intervention_use(
        self, client_id: str, intervention_id: str, kind: str, when: datetime
    ) -> None:
        assignment = self._assignment(client_id, intervention_id)
        assignment.times_used += 1
        assignment.last_used_at = when

    def record_intervention_rating(
        self, client_id: str, intervention_id: str, kind: str, rating: int
    ) -> None:
        assignment = self._assignment(client_id, intervention_id)
        assignment.effectiveness_rating = blend_rating(assignment.effectiveness_rating, rating)
