from __future__ import annotations


class UpstreamServiceError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class VisionServiceError(UpstreamServiceError):
    pass


class CompletionServiceError(UpstreamServiceError):
    pass
