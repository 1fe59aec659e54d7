"""Error taxonomy for the crisis subsystem.

Collaborators raise these; public entry points catch them at their
boundary and convert them to typed results.
"""


class CrisisSystemError(Exception):
    """Base exception for crisis subsystem errors."""
    pass


class ClassifierFailure(CrisisSystemError):
    """Sentiment/emotion classifier unavailable or returned garbage."""
    pass


class LocationUnavailable(CrisisSystemError):
    """User location could not be resolved."""
    pass


class ChannelUnreachable(CrisisSystemError):
    """A single contact, hotline, referral, or dispatch attempt failed."""
    pass


class PersistenceFailure(CrisisSystemError):
    """An audit or store write failed."""
    pass


class OrchestratorFailure(CrisisSystemError):
    """Unexpected internal error inside the escalation orchestrator."""
    pass


class CatalogError(CrisisSystemError):
    """Protocol catalog or hotline directory is invalid.

    Raised at load time only.
    """
    pass
