"""Exception hierarchy shared across prhook_core.

Inbound validation errors stop at the HTTP boundary. Collaborator errors
(change source, analysis, timeouts) are caught by the orchestrator and turned
into an ``error`` review status. Store errors are not wrapped and propagate.
"""


class PrhookError(Exception):
    """Base class for all prhook errors."""


class InvalidPayloadError(PrhookError):
    """A webhook payload is not a well-formed pull request event."""


class CollaboratorError(PrhookError):
    """An external collaborator call failed."""


class CollaboratorTimeoutError(CollaboratorError):
    """An external collaborator call exceeded its timeout."""


class ChangeSourceError(CollaboratorError):
    """The change-source API (GitHub) returned an error."""


class ChangeNotFoundError(ChangeSourceError):
    pass


class ChangePermissionError(ChangeSourceError):
    pass


class ChangeRateLimitError(ChangeSourceError):
    pass


class AnalysisError(CollaboratorError):
    """The analysis API call failed."""


class MalformedAnalysisError(AnalysisError):
    """The analysis API answered, but not with a usable assessment."""
