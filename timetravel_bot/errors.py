from __future__ import annotations


class TimeTravelBotError(Exception):
    """Base class for errors the bot reports back to users instead of crashing."""


class ValidationError(TimeTravelBotError):
    """Malformed command input. Reported inline, no state change."""


class NotFound(TimeTravelBotError):
    """A role, mapping or reversal control target does not exist (anymore)."""


class PermissionDenied(TimeTravelBotError):
    """The invoking member is not allowed to perform the action."""


class Expired(TimeTravelBotError):
    """A reversal control was used after its session's deadline."""


class RoleMutationError(TimeTravelBotError):
    """The platform refused or failed to add/remove roles."""


class RepositoryUnavailable(TimeTravelBotError):
    """The configuration store could not be reached or queried."""
