"""
InterventionRanker: asks the LLM to pick a primary and a secondary
intervention from a candidate list, replying in strict JSON.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.errors import MalformedSelectorResponse
from ..core.model import KIND_ENERGY, EffectivenessRecord, Intervention, SituationFacts
from ..core.utils import Outcome
from .client import ChatClient, LLMAPIError

logger = logging.getLogger(__name__)

RANKER_SYSTEM_PROMPT = """\
You are an expert behavioural coach choosing the two most helpful strategies \
for a client in the moment.

Use the client's situation, the time of day and their history:
- Strongly prefer strategies with effectiveness 8 or higher.
- De-emphasize strategies rated below 5.
- Avoid strategies suggested recently unless nothing else fits.
- The secondary must be a different strategy from the primary.

Only choose from the provided list, using the exact ids.

Respond with a JSON object only:
{
  "primaryIntervention": {"id": "...", "name": "...", "description": "...", "category": "..."},
  "secondaryIntervention": {"id": "...", "name": "...", "description": "...", "category": "..."},
  "reasoning": "one or two sentences"
}"""


@dataclass
class RankedPick:
    primary_id: str
    secondary_id: str
    reasoning: str = ""


@dataclass
class RankingRequest:
    facts: SituationFacts
    time_label: str = ""
    day_name: str = ""
    history: List[EffectivenessRecord] = field(default_factory=list)


def build_ranking_prompt(request: RankingRequest, candidates: List[Intervention]) -> str:
    facts = request.facts
    energy = facts.kind == KIND_ENERGY
    lines = ["## Client situation"]
    lines.append(f"- {'Blocker' if energy else 'Craving'}: {facts.trigger or 'unknown'}")
    if facts.intensity is not None:
        lines.append(f"- {'Energy level' if energy else 'Intensity'}: {facts.intensity}/10")
    lines.append(f"- Location: {facts.location or 'unknown'}")
    lines.append(f"- {'What helps' if energy else 'Trigger'}: {facts.context or 'unknown'}")
    if request.time_label:
        lines.append(f"- Time: {request.time_label}, {request.day_name}")

    if request.history:
        lines.append("\n## Effectiveness history")
        for rec in request.history:
            recent = " (suggested recently)" if rec.recently_suggested else ""
            lines.append(
                f"- {rec.name} [{rec.intervention_id}]: rated {rec.effectiveness}/10, "
                f"used {rec.times_suggested}x, last in {rec.context}{recent}"
            )

    lines.append("\n## Available strategies")
    for c in candidates:
        category = f" [{c.category}]" if c.category else ""
        lines.append(f"- id={c.id}: {c.name}{category}: {c.description}")
    return "\n".join(lines)


class InterventionRanker:
    def __init__(self, client: Optional[ChatClient] = None):
        self.client = client

    @property
    def is_available(self) -> bool:
        return self.client is not None and self.client.is_available

    def rank(
        self, request: RankingRequest, candidates: List[Intervention]
    ) -> Outcome[RankedPick]:
        if not self.is_available:
            return Outcome.failure(LLMAPIError(401, "LLM client not configured"))

        try:
            response = self.client.chat_completion(
                messages=[
                    {"role": "system", "content": RANKER_SYSTEM_PROMPT},
                    {"role": "user", "content": build_ranking_prompt(request, candidates)},
                ],
                temperature=0.3,
                max_tokens=500,
                response_format={"type": "json_object"},
            )
        except LLMAPIError as e:
            logger.warning(f"[InterventionRanker] {e}")
            return Outcome.failure(e)
        except Exception as e:
            logger.warning(f"[InterventionRanker] Exception: {e}")
            return Outcome.failure(MalformedSelectorResponse(str(e)))

        return parse_ranking(response)


def parse_ranking(response: str) -> Outcome[RankedPick]:
    try:
        data = json.loads(response)
        pick = RankedPick(
            primary_id=str(data["primaryIntervention"]["id"]),
            secondary_id=str(data["secondaryIntervention"]["id"]),
            reasoning=str(data.get("reasoning", "")),
        )
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.warning(f"[InterventionRanker] Unparseable response: {e}")
        return Outcome.failure(MalformedSelectorResponse(str(e)))
    return Outcome.success(pick)
