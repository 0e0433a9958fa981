"""
SQLAlchemy-backed incident store.

Works with any SQLAlchemy URL. ``sqlite://`` gives a single shared
in-memory database, which the tests use.
"""

from __future__ import annotations

import dataclasses
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Type

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

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
from .sql_models import (
    INCIDENT_ROWS,
    Base,
    ClientInterventionRow,
    ClientRow,
    CoachRow,
    InterventionRow,
    MessageRow,
)

logger = logging.getLogger(__name__)


def _aware(moment: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _incident_from_row(row: Any, cls: Type[Incident]) -> Incident:
    values = {f.name: getattr(row, f.name) for f in dataclasses.fields(cls)}
    values["created_at"] = _aware(values["created_at"])
    values["resolved_at"] = _aware(values["resolved_at"])
    return cls(**values)


def _intervention_from_row(row: InterventionRow) -> Intervention:
    return Intervention(
        id=row.id,
        name=row.name,
        description=row.description,
        kind=row.kind,
        category=row.category,
        context_tags=list(row.context_tags) if row.context_tags else None,
        coach_id=row.coach_id,
        active=row.active,
    )


def _assignment_from_row(row: ClientInterventionRow) -> ClientIntervention:
    return ClientIntervention(
        client_id=row.client_id,
        intervention_id=row.intervention_id,
        kind=row.kind,
        active=row.active,
        favorite=row.favorite,
        times_used=row.times_used,
        last_used_at=_aware(row.last_used_at),
        effectiveness_rating=row.effectiveness_rating,
        coach_notes=row.coach_notes,
    )


class SqlIncidentStore(IncidentStore):
    def __init__(self, database_url: str = "sqlite://", create_tables: bool = True):
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(database_url, pool_pre_ping=True)
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )
        if create_tables:
            Base.metadata.create_all(self.engine)
        logger.info(f"[SqlIncidentStore] Connected to {self.engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def _db(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ── Incidents ───────────────────────────────────────────────────────────

    def _incident_row_class(self, kind: str):
        row_cls = INCIDENT_ROWS.get(kind)
        if row_cls is None:
            raise StoreError(f"Unknown incident kind: {kind}")
        return row_cls

    def _find_incident_row(self, db: Session, incident_id: str):
        for kind, row_cls in INCIDENT_ROWS.items():
            row = db.query(row_cls).filter(row_cls.id == incident_id).first()
            if row is not None:
                return kind, row
        return None, None

    def create_incident(self, client_id: str, kind: str, now: datetime) -> Incident:
        row_cls = self._incident_row_class(kind)
        row = row_cls(
            id=new_id(),
            client_id=client_id,
            created_at=now,
            day_of_week=day_of_week(now),
            time_of_day=time_of_day_stamp(now),
        )
        with self._db() as db:
            db.add(row)
            db.flush()
            return _incident_from_row(row, INCIDENT_CLASSES[kind])

    def find_active_incident(
        self, client_id: str, kind: str, since: datetime
    ) -> Optional[Incident]:
        row_cls = self._incident_row_class(kind)
        with self._db() as db:
            row = (
                db.query(row_cls)
                .filter(row_cls.client_id == client_id)
                .filter(row_cls.resolved_at.is_(None))
                .filter(row_cls.created_at >= since)
                .order_by(row_cls.created_at.desc())
                .first()
            )
            return _incident_from_row(row, INCIDENT_CLASSES[kind]) if row else None

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        with self._db() as db:
            kind, row = self._find_incident_row(db, incident_id)
            return _incident_from_row(row, INCIDENT_CLASSES[kind]) if row else None

    def update_incident(self, incident_id: str, fields: Dict[str, Any]) -> Incident:
        with self._db() as db:
            kind, row = self._find_incident_row(db, incident_id)
            if row is None:
                raise StoreError(f"Incident {incident_id} not found")
            incident = _incident_from_row(row, INCIDENT_CLASSES[kind])
            for name in incident.apply(fields):
                setattr(row, name, getattr(incident, name))
            return incident

    def list_incidents(self, client_id: str, kind: str, limit: int = 50) -> List[Incident]:
        row_cls = self._incident_row_class(kind)
        with self._db() as db:
            rows = (
                db.query(row_cls)
                .filter(row_cls.client_id == client_id)
                .order_by(row_cls.created_at.desc())
                .limit(limit)
                .all()
            )
            return [_incident_from_row(r, INCIDENT_CLASSES[kind]) for r in rows]

    # ── Messages ────────────────────────────────────────────────────────────

    def append_message(self, message: Message) -> Message:
        if not message.id:
            message.id = new_id()
        with self._db() as db:
            kind, incident = self._find_incident_row(db, message.incident_id)
            if incident is None:
                raise StoreError(f"Incident {message.incident_id} not found")
            db.add(MessageRow(
                id=message.id,
                incident_type=message.kind,
                incident_id=message.incident_id,
                sender_type=message.sender,
                message_text=message.text,
                message_type=message.message_type,
                meta=message.metadata or None,
                created_at=message.created_at or datetime.now(timezone.utc),
            ))
        return message

    def list_messages(self, kind: str, incident_id: str) -> List[Message]:
        with self._db() as db:
            rows = (
                db.query(MessageRow)
                .filter(MessageRow.incident_type == kind)
                .filter(MessageRow.incident_id == incident_id)
                .order_by(MessageRow.created_at.asc(), MessageRow.seq.asc())
                .all()
            )
            return [
                Message(
                    id=r.id,
                    incident_id=r.incident_id,
                    kind=r.incident_type,
                    sender=r.sender_type,
                    text=r.message_text,
                    message_type=r.message_type,
                    created_at=_aware(r.created_at),
                    metadata=dict(r.meta or {}),
                )
                for r in rows
            ]

    # ── People ──────────────────────────────────────────────────────────────

    @staticmethod
    def _client(row: ClientRow) -> Client:
        return Client(
            id=row.id,
            coach_id=row.coach_id,
            full_name=row.full_name,
            email=row.email,
            status=row.status,
            access_token=row.access_token,
        )

    def find_client_by_token(self, token: str) -> Optional[Client]:
        with self._db() as db:
            row = db.query(ClientRow).filter(ClientRow.access_token == token).first()
            return self._client(row) if row else None

    def get_client(self, client_id: str) -> Optional[Client]:
        with self._db() as db:
            row = db.query(ClientRow).filter(ClientRow.id == client_id).first()
            return self._client(row) if row else None

    def get_coach(self, coach_id: str) -> Optional[Coach]:
        with self._db() as db:
            row = db.query(CoachRow).filter(CoachRow.id == coach_id).first()
            if row is None:
                return None
            return Coach(
                id=row.id,
                full_name=row.full_name,
                avatar_url=row.avatar_url,
                tone_preset=row.tone_preset,
            )

    def add_coach(self, coach: Coach) -> Coach:
        with self._db() as db:
            db.merge(CoachRow(
                id=coach.id,
                full_name=coach.full_name,
                avatar_url=coach.avatar_url,
                tone_preset=coach.tone_preset,
            ))
        return coach

    def add_client(self, client: Client) -> Client:
        with self._db() as db:
            db.merge(ClientRow(
                id=client.id,
                coach_id=client.coach_id,
                full_name=client.full_name,
                email=client.email,
                status=client.status,
                access_token=client.access_token,
            ))
        return client

    # ── Interventions ───────────────────────────────────────────────────────

    def add_intervention(self, intervention: Intervention) -> Intervention:
        with self._db() as db:
            db.merge(InterventionRow(
                id=intervention.id,
                kind=intervention.kind,
                coach_id=intervention.coach_id,
                name=intervention.name,
                description=intervention.description,
                category=intervention.category,
                context_tags=list(intervention.context_tags) if intervention.context_tags else None,
                active=intervention.active,
            ))
        return intervention

    def _assignment_row(self, db: Session, client_id: str, intervention_id: str):
        return (
            db.query(ClientInterventionRow)
            .filter(ClientInterventionRow.client_id == client_id)
            .filter(ClientInterventionRow.intervention_id == intervention_id)
            .first()
        )

    def assign_intervention(self, assignment: ClientIntervention) -> ClientIntervention:
        with self._db() as db:
            if db.query(InterventionRow).filter(InterventionRow.id == assignment.intervention_id).first() is None:
                raise StoreError(f"Intervention {assignment.intervention_id} not found")
            row = self._assignment_row(db, assignment.client_id, assignment.intervention_id)
            if row is None:
                row = ClientInterventionRow(
                    client_id=assignment.client_id,
                    intervention_id=assignment.intervention_id,
                )
                db.add(row)
            row.kind = assignment.kind
            row.active = assignment.active
            row.favorite = assignment.favorite
            row.times_used = assignment.times_used
            row.last_used_at = assignment.last_used_at
            row.effectiveness_rating = assignment.effectiveness_rating
            row.coach_notes = assignment.coach_notes
        return assignment

    def list_client_interventions(
        self, client_id: str, kind: str, active_only: bool = True
    ) -> List[Intervention]:
        with self._db() as db:
            query = (
                db.query(InterventionRow)
                .join(ClientInterventionRow, ClientInterventionRow.intervention_id == InterventionRow.id)
                .filter(ClientInterventionRow.client_id == client_id)
                .filter(ClientInterventionRow.kind == kind)
                .filter(InterventionRow.kind == kind)
            )
            if active_only:
                query = query.filter(ClientInterventionRow.active.is_(True)).filter(
                    InterventionRow.active.is_(True)
                )
            return [_intervention_from_row(r) for r in query.order_by(ClientInterventionRow.id).all()]

    def list_client_intervention_records(
        self, client_id: str, kind: str
    ) -> List[ClientIntervention]:
        with self._db() as db:
            rows = (
                db.query(ClientInterventionRow)
                .filter(ClientInterventionRow.client_id == client_id)
                .filter(ClientInterventionRow.kind == kind)
                .order_by(ClientInterventionRow.id)
                .all()
            )
            return [_assignment_from_row(r) for r in rows]

    def record_intervention_use(
        self, client_id: str, intervention_id: str, kind: str, when: datetime
    ) -> None:
        with self._db() as db:
            row = self._assignment_row(db, client_id, intervention_id)
            if row is None:
                raise StoreError(
                    f"Intervention {intervention_id} is not assigned to client {client_id}"
                )
            row.times_used = (row.times_used or 0) + 1
            row.last_used_at = when

    def record_intervention_rating(
        self, client_id: str, intervention_id: str, kind: str, rating: int
    ) -> None:
        with self._db() as db:
            row = self._assignment_row(db, client_id, intervention_id)
            if row is None:
                raise StoreError(
                    f"Intervention {intervention_id} is not assigned to client {client_id}"
                )
            row.effectiveness_rating = blend_rating(row.effectiveness_rating, rating)
