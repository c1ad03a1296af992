# src/nav_analytics_engine/exceptions.py

class NavAnalyticsError(Exception):
    """Base exception for all errors raised by the NAV analytics engine."""
    def __init__(self, message="An unspecified error occurred in the NAV analytics engine."):
        self.message = message
        super().__init__(self.message)


class InvalidInputDataError(NavAnalyticsError):
    """
    Raised when a caller violates the engine's input contract (weights not
    summing to 100, non-positive amounts, inverted date ranges, duplicate NAV
    dates, unknown funds). Always raised before any calculation starts.
    """
    def __init__(self, message="Invalid input data provided for NAV analytics calculation."):
        self.message = message
        super().__init__(self.message)


class InsufficientDataError(NavAnalyticsError):
    """Raised when a caller explicitly requires data the NAV history cannot provide."""
    def __init__(self, message="Insufficient NAV history for the requested calculation."):
        self.message = message
        super().__init__(self.message)


class MissingConfigurationError(NavAnalyticsError):
    """Raised when required configuration for an engine component is missing."""
    def __init__(self, message="Missing required configuration for NAV analytics engine."):
        self.message = message
        super().__init__(self.message)
