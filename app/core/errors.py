"""Error taxonomy for the instance lifecycle."""


class ControlPlaneError(Exception):
    """Base class for every error the lifecycle manager raises."""


class InvalidInputError(ControlPlaneError):
    """Malformed identifier, address, email or plan."""


class CapacityError(ControlPlaneError):
    """No pool capacity, or the owner reached their instance limit."""


class ConnectivityError(ControlPlaneError):
    """A node or the metadata store refused the handshake."""


class ConsistencyError(ControlPlaneError):
    """A stored record failed a deprovisioning safety check."""


class StatementError(ControlPlaneError):
    """A statement came back with a non-success result."""

    def __init__(self, message: str, step: str | None = None) -> None:
        super().__init__(message)
        self.step = step


class NotFoundError(ControlPlaneError):
    """Requested record does not exist."""


class ForbiddenError(ControlPlaneError):
    """Record exists but belongs to someone else."""


class ConflictError(ControlPlaneError):
    """The name being created is already taken."""
