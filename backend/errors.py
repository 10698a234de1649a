# backend/errors.py
from typing import Optional


class PredictionError(Exception):
    """Lớp gốc cho mọi lỗi mà prediction client trả ra cho caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PredictionError):
    """Input phía caller sai (thiếu API key), phát hiện trước khi gọi mạng."""


class SubmissionError(PredictionError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PollingError(PredictionError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class JobFailedError(PredictionError):
    """Service báo job failed (trạng thái cuối)."""


class UnknownError(PredictionError):
    pass


class PollTimeoutError(PredictionError, TimeoutError):
    pass


class PredictionCancelledError(PredictionError):
    pass
