"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ForecastAPIError(DomainException):
    """Forecast provider returned an error or is unavailable"""

    pass


class SensingError(DomainException):
    """Financial context could not be gathered (upstream data unavailable)"""

    pass


class ValidationError(DomainException):
    """Suggestion target parameters are malformed"""

    pass


class NotFoundError(DomainException):
    """Suggestion or entity does not exist for this user"""

    pass


class InvalidStateError(DomainException):
    """Decision attempted on a suggestion that is no longer pending"""

    pass


class SimulationError(DomainException):
    """Impact computation failed or timed out"""

    pass


class GenerationInProgressError(DomainException):
    """Another suggestion generation is already running for this user"""

    pass
