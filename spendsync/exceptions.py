from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception"""
    pass


class NotFoundError(AppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(AppException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(AppException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


# ==============================================================================
# Domain errors (raised by the ingestion pipeline, never by route handlers)
# ==============================================================================

class SyncJobError(Exception):
    """Base class for sync job failures"""
    pass


class JobNotFoundError(SyncJobError):
    def __init__(self, job_id):
        super().__init__(f"Sync job {job_id} not found")
        self.job_id = job_id


class InvalidJobTransition(SyncJobError):
    def __init__(self, job_id, current: str, requested: str):
        super().__init__(f"Sync job {job_id} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class MailProviderError(SyncJobError):
    """Mail provider call failed (listing or content fetch)"""
    pass
