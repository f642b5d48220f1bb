"""Error taxonomy for map generation."""


class ConfigurationError(ValueError):
    """Invalid or out-of-range generation parameter.

    Raised before any generation work begins.
    """


class DegenerateInputError(ValueError):
    """Point set cannot be triangulated (fewer than 3 points, collinear, ...)."""


class InvariantViolationError(RuntimeError):
    """An internal bound was exceeded. This indicates a bug, not bad input."""
