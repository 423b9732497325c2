"""Error types raised by the load optimization pipeline."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for errors raised by the optimization pipeline."""


class MissingParameterError(DispatchError):
    """A required request field is absent."""


class InvalidParameterError(DispatchError):
    """A request field is present but cannot be used."""


class NotFoundError(DispatchError):
    """A warehouse or the pending orders for a request do not exist."""


class DataIntegrityError(DispatchError):
    """A storage row carries a value that cannot be interpreted."""


class PersistenceError(DispatchError):
    """Reading from or writing to storage failed."""


class UpstreamDegradedError(DispatchError):
    """The route matrix service could not produce a usable answer."""


class SolverError(DispatchError):
    """Base class for solver collaborator misbehaviour."""


class SolverFailedError(SolverError):
    """The solver process exited unsuccessfully or timed out."""

    def __init__(self, message: str, *, exit_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class SolverOutputInvalidError(SolverError):
    """The solver exited cleanly but its output breaks the result contract."""


class CapacityViolationError(SolverOutputInvalidError):
    """A suggested load exceeds the weight or pallet capacity of its vehicle."""

    def __init__(self, message: str, *, vehicle_id: str, field: str, value: float, limit: float) -> None:
        super().__init__(message)
        self.vehicle_id = vehicle_id
        self.field = field
        self.value = value
        self.limit = limit
