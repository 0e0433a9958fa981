"""
Domain errors for SOS sessions.

Every error carries ``user_message``, the non-technical line shown to the
client when the error ends a turn or a session.
"""

from __future__ import annotations


class SupportError(Exception):
    """Base class for SOS session failures."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: str = ""):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class Unauthenticated(SupportError):
    user_message = "We couldn't confirm who you are. Please open the link from your coach again."


class IncidentCreationFailed(SupportError):
    user_message = "We couldn't start your session right now. Please try again in a moment."


class PersistenceWriteFailed(SupportError):
    user_message = "We couldn't save that answer, but you can keep going."


class GenerationFailed(SupportError):
    user_message = "Unable to generate coach response. Please try again."


class NoEligibleInterventions(SupportError):
    user_message = (
        "I don't have any interventions configured for you yet. "
        "Please contact your coach to set up your personalized strategies."
    )


class MalformedSelectorResponse(SupportError):
    user_message = "AI response was malformed, used fallback selection."


class StoreError(Exception):
    """Raised by incident stores when a read or write is rejected."""
