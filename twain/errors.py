"""
Exceptions shared by the store, the authoring session and the HTTP layer.
Business-rule violations are raised as these and turned into user-facing
messages by the caller.
"""


class TwainError(Exception):
    """Base class for every error raised on purpose by this package"""
    pass


class StorageError(TwainError):
    """Reading or writing a flat file or the key-value store failed"""
    pass


class ValidationError(TwainError):
    """A required field is missing or a value has the wrong format"""
    pass


class ConflictError(TwainError):
    """The record already exists, or the request was already processed"""
    pass


class NotFoundError(TwainError):
    """No record with the given id or email"""
    pass


class UpgradeRequired(TwainError):
    """The current plan does not allow this action; show the upgrade prompt"""

    def __init__(self, feature: str, limit: int | None = None):
        self.feature = feature
        self.limit = limit
        if limit is None:
            message = f"'{feature}' requires the paid plan"
        else:
            message = f"The free plan allows at most {limit} {feature}"
        super().__init__(message)


class SeriesFull(ValidationError):
    """Every book number (1-12) in the series is already taken"""

    def __init__(self, series_name: str):
        self.series_name = series_name
        super().__init__(f"Series '{series_name}' has no free book numbers left")


class ImportConflict(ConflictError):
    """Some imported stories share a title with an existing chapter"""

    def __init__(self, conflicts: list, clean: list):
        self.conflicts = conflicts
        self.clean = clean
        titles = ", ".join(title for _, title in conflicts)
        super().__init__(f"Chapters already exist with these titles: {titles}")
