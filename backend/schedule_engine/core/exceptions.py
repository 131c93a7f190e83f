class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ScheduleValidationError(AppError):
    """Raised when malformed occurrence data reaches the expander or the detector."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ResolutionError(AppError):
    """Raised when a reference cannot be matched to a catalog entry."""
    def __init__(self, entity: str, value):
        self.entity = entity
        self.value = value
        super().__init__(f"Unknown {entity}: {value!r}", status_code=400, details={"entity": entity, "value": value})

class ScheduleConflictError(AppError):
    """Raised when a write would double-book a teacher, room or group."""
    def __init__(self, message: str, conflicts: list[dict]):
        self.conflicts = conflicts
        super().__init__(message, status_code=409, details={"conflicts": conflicts})

class PersistenceError(AppError):
    """Raised when the schedule store rejects a create or update."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class ReasoningServiceError(AppError):
    """Raised when the external reasoning service fails or answers with garbage."""
    def __init__(self, message: str):
        super().__init__(message, status_code=502)
