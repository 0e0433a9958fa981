"""
SQLAlchemy tables backing ``SqlIncidentStore``.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class CoachRow(Base):
    __tablename__ = "coaches"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tone_preset: Mapped[str] = mapped_column(String(32), nullable=False, default="friendly")


class ClientRow(Base):
    __tablename__ = "clients"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    coach_id: Mapped[str] = mapped_column(ForeignKey("coaches.id"), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    access_token: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True, index=True)


class InterventionRow(Base):
    __tablename__ = "interventions"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    coach_id: Mapped[Optional[str]] = mapped_column(ForeignKey("coaches.id"), nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    context_tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ClientInterventionRow(Base):
    __tablename__ = "client_interventions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False, index=True)
    intervention_id: Mapped[str] = mapped_column(ForeignKey("interventions.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effectiveness_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    coach_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CravingIncidentRow(Base):
    __tablename__ = "craving_incidents"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    time_of_day: Mapped[str] = mapped_column(String(8), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    intervention_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    trigger_food: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    initial_intensity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    context: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tactic_used: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    result_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notify_coach: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class MovementIncidentRow(Base):
    __tablename__ = "movement_incidents"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    time_of_day: Mapped[str] = mapped_column(String(8), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    intervention_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    blocker_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    energy_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    approach: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    activity_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    activity_completed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    post_energy_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class MessageRow(Base):
    __tablename__ = "client_sos_messages"
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    incident_type: Mapped[str] = mapped_column(String(16), nullable=False)
    incident_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sender_type: Mapped[str] = mapped_column(String(16), nullable=False)
    message_text: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(32), nullable=False, default="text")
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


INCIDENT_ROWS = {
    "craving": CravingIncidentRow,
    "energy": MovementIncidentRow,
}
