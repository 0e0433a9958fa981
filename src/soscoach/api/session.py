"""
Service wiring for the SOS coach API.

One ``SupportServices`` instance per process holds the store, the LLM
collaborators, the lifecycle manager and the dispatcher. Conversation state
itself lives with the client and is round-tripped on every turn.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import Settings
from ..content.interventions import seed_demo_data
from ..core.dispatcher import UnifiedDispatcher
from ..core.lifecycle import IncidentLifecycle
from ..core.model import ClientSession, ConversationState, Credentials, normalize_tone
from ..core.selector import InterventionSelector
from ..llm.client import ChatClient
from ..llm.generator import ResponseGenerator
from ..llm.ranker import InterventionRanker
from ..store.base import IncidentStore
from ..store.memory import InMemoryIncidentStore
from ..store.sql import SqlIncidentStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> IncidentStore:
    if settings.database_url:
        store: IncidentStore = SqlIncidentStore(settings.database_url)
    else:
        store = InMemoryIncidentStore()
    if settings.seed_demo:
        seed_demo_data(store)
    return store


class SupportServices:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[IncidentStore] = None,
        client: Optional[ChatClient] = None,
        generator: Optional[ResponseGenerator] = None,
        ranker: Optional[InterventionRanker] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.store = store if store is not None else build_store(self.settings)
        if client is None and (generator is None or ranker is None):
            client = ChatClient()
        self.client = client
        self.generator = generator or ResponseGenerator(client)
        self.ranker = ranker or InterventionRanker(client)
        self.lifecycle = IncidentLifecycle(
            self.store, active_window_minutes=self.settings.active_window_minutes
        )
        self.selector = InterventionSelector(self.ranker)
        self.dispatcher = UnifiedDispatcher(
            self.lifecycle,
            selector=self.selector,
            generator=self.generator,
            settings=self.settings,
        )
        logger.info(f"[SupportServices] Ready with settings {self.settings.to_dict()}")

    @property
    def llm_available(self) -> bool:
        return self.generator.is_available

    def authenticate(self, credentials: Credentials) -> ClientSession:
        return self.lifecycle.resolve_identity(credentials)

    def new_state(self, session: ClientSession) -> ConversationState:
        """Fresh conversation state carrying the client's name and coach persona."""
        client, coach = self.lifecycle.load_profile(session)
        return ConversationState(
            session=session,
            client_name=client.first_name if client else "",
            coach_name=coach.full_name,
            coach_tone=normalize_tone(coach.tone_preset),
        )
