from __future__ import annotations


class PipelineError(RuntimeError):
    code = "pipeline_error"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, object]:
        return {"error": self.code, "message": str(self)}


class ValidationError(PipelineError):
    """Caller input rejected before any completion call."""

    code = "validation_error"
    status_code = 400


class NotFound(PipelineError):
    code = "not_found"
    status_code = 404


class EmptyInput(PipelineError):
    code = "empty_input"
    status_code = 400


class RateLimited(PipelineError):
    code = "rate_limited"
    status_code = 429

    def __init__(self, message: str, *, retry_after_seconds: float):
        super().__init__(message)
        self.retry_after_seconds = max(0.0, float(retry_after_seconds))

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        payload["retryAfter"] = self.retry_after_header()
        return payload

    def retry_after_header(self) -> int:
        whole = int(self.retry_after_seconds)
        return whole + 1 if self.retry_after_seconds > whole else max(1, whole)


class CompletionUnavailable(PipelineError):
    """The completion service could not be reached, timed out, or is not configured."""

    code = "completion_unavailable"
    status_code = 503


class ParseError(PipelineError):
    """The completion service answered but the output broke its contract."""

    code = "parse_error"
    status_code = 502
