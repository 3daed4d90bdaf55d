"""Typed failures raised by the growth engine."""


class GrowthEngineError(Exception):
    """Base class for all growth engine failures."""


class NotFoundError(GrowthEngineError, LookupError):
    """A lead, sequence or staff member could not be found."""


class InvalidStateError(GrowthEngineError):
    """The operation is not legal for the lead's current lifecycle state."""


class ValidationFailure(GrowthEngineError, ValueError):
    """Malformed input such as negative counters or out-of-range scores."""
