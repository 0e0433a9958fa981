"""
Intervention selection.

Narrow the client's candidates by location, prefer ones not suggested
recently, let the ranker pick a primary and a secondary, then validate the
pick. Anything the ranker gets wrong is repaired or replaced by a
deterministic first-two choice, so a selection always comes back when at
least one candidate survives filtering.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..content.options import UNIVERSAL_TAG, location_tag
from ..llm.ranker import InterventionRanker, RankingRequest
from .errors import MalformedSelectorResponse, NoEligibleInterventions
from .model import (
    KIND_ENERGY,
    ClientIntervention,
    EffectivenessRecord,
    Incident,
    Intervention,
    Selection,
    SituationFacts,
)
from .utils import Outcome, current_context_info, utcnow

logger = logging.getLogger(__name__)

SINGLE_CANDIDATE_REASONING = (
    "Only one intervention was available for this situation, so it is offered as both options."
)
FALLBACK_REASONING = "AI response was malformed, used fallback selection."
VARIETY_NOTE = " (Secondary was automatically adjusted to ensure variety.)"


# =============================================================================
# FILTERING
# =============================================================================

def filter_by_location(
    candidates: Sequence[Intervention], location: Optional[str]
) -> List[Intervention]:
    """Keep untagged candidates and those tagged for the location or ``universal``."""
    tag = location_tag(location)
    kept = []
    for c in candidates:
        tags = [t.lower() for t in (c.context_tags or [])]
        if not tags or tag in tags or UNIVERSAL_TAG in tags:
            kept.append(c)
    return kept


def partition_recent(
    candidates: Sequence[Intervention], history: Iterable[EffectivenessRecord]
) -> Tuple[List[Intervention], List[Intervention]]:
    """Split into (fresh, recently suggested), preserving order."""
    recent_ids = {rec.intervention_id for rec in history if rec.recently_suggested}
    fresh = [c for c in candidates if c.id not in recent_ids]
    recent = [c for c in candidates if c.id in recent_ids]
    return fresh, recent


# =============================================================================
# EFFECTIVENESS HISTORY
# =============================================================================

def describe_incident(incident: Optional[Incident]) -> str:
    """Short situational summary, e.g. ``"Chocolate craving, at Home, Stress"``."""
    if incident is None:
        return "general usage"
    if incident.kind == KIND_ENERGY:
        head = getattr(incident, "blocker_type", None)
        head = f"{head} blocker" if head else None
        tail = getattr(incident, "approach", None)
    else:
        head = getattr(incident, "trigger_food", None)
        head = f"{head} craving" if head else None
        tail = getattr(incident, "context", None)
    location = getattr(incident, "location", None)
    parts = [p for p in (head, f"at {location}" if location else None, tail) if p]
    return ", ".join(parts) if parts else "general usage"


def build_history(
    records: Sequence[ClientIntervention],
    catalog: Sequence[Intervention],
    incidents: Sequence[Incident],
    now: datetime,
    recent_days: int = 7,
) -> List[EffectivenessRecord]:
    """
    Effectiveness history from rated client-intervention rows.

    ``incidents`` must be ordered most recent first; the first incident
    that used an intervention supplies its context description.
    """
    names: Dict[str, str] = {c.id: c.name for c in catalog}
    cutoff = now - timedelta(days=recent_days)
    history = []
    for rec in records:
        if not rec.effectiveness_rating or rec.effectiveness_rating < 1:
            continue
        last_incident = next(
            (inc for inc in incidents if inc.intervention_id == rec.intervention_id), None
        )
        history.append(EffectivenessRecord(
            intervention_id=rec.intervention_id,
            name=names.get(rec.intervention_id, rec.intervention_id),
            effectiveness=rec.effectiveness_rating,
            context=describe_incident(last_incident),
            times_suggested=rec.times_used,
            last_suggested_at=rec.last_used_at,
            recently_suggested=bool(rec.last_used_at and rec.last_used_at >= cutoff),
        ))
    history.sort(key=lambda r: r.effectiveness, reverse=True)
    return history


# =============================================================================
# SELECTOR
# =============================================================================

class InterventionSelector:
    def __init__(
        self,
        ranker: Optional[InterventionRanker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ranker = ranker
        self.clock = clock

    def select(
        self,
        candidates: Sequence[Intervention],
        facts: SituationFacts,
        history: Sequence[EffectivenessRecord] = (),
    ) -> Outcome[Selection]:
        survivors = filter_by_location(candidates, facts.location)
        if not survivors:
            logger.info(
                f"[InterventionSelector] No candidates for location {facts.location!r} "
                f"({len(candidates)} before filtering)"
            )
            return Outcome.failure(NoEligibleInterventions(
                f"No eligible interventions for {facts.kind} at {facts.location}"
            ))

        if len(survivors) == 1:
            only = survivors[0]
            return Outcome.success(Selection(only, only, SINGLE_CANDIDATE_REASONING))

        fresh, _recent = partition_recent(survivors, history)
        pool = fresh if len(fresh) >= 2 else survivors

        selection = self._ranked(pool, facts, history)
        if selection is None:
            selection = Selection(pool[0], pool[1], FALLBACK_REASONING)
        logger.info(
            f"[InterventionSelector] primary={selection.primary.id} "
            f"secondary={selection.secondary.id} (pool={len(pool)})"
        )
        return Outcome.success(selection)

    def _ranked(
        self,
        pool: List[Intervention],
        facts: SituationFacts,
        history: Sequence[EffectivenessRecord],
    ) -> Optional[Selection]:
        if self.ranker is None:
            return None

        time_label, day_name = current_context_info(self.clock())
        outcome = self.ranker.rank(
            RankingRequest(facts=facts, time_label=time_label, day_name=day_name, history=list(history)),
            pool,
        )
        if not outcome.ok:
            logger.warning(f"[InterventionSelector] Ranker failed: {outcome.error}")
            return None

        pick = outcome.value
        by_id = {c.id: c for c in pool}
        primary = by_id.get(pick.primary_id)
        secondary = by_id.get(pick.secondary_id)
        if primary is None or secondary is None:
            logger.warning(
                f"[InterventionSelector] {MalformedSelectorResponse.__name__}: "
                f"ids {pick.primary_id!r}/{pick.secondary_id!r} not in candidate list"
            )
            return None

        reasoning = pick.reasoning
        if primary.id == secondary.id:
            secondary = next(c for c in pool if c.id != primary.id)
            reasoning = f"{reasoning}{VARIETY_NOTE}"
        return Selection(primary, secondary, reasoning)
