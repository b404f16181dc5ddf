class ChatServiceError(Exception):
    """Upstream text-generation failure, surfaced to the user as a chat message."""

    kind = "error"

    def __init__(self, message: str = "", status_code: int = 500) -> None:
        super().__init__(message or self.kind)
        self.status_code = status_code


class RateLimited(ChatServiceError):
    kind = "rate_limited"

    def __init__(self, message: str = "Too many requests (429)") -> None:
        super().__init__(message, status_code=429)


class MissingCredentials(ChatServiceError):
    kind = "unavailable"

    def __init__(self, message: str = "API key not configured") -> None:
        super().__init__(message, status_code=503)


class InvalidResponse(ChatServiceError):
    kind = "invalid_response"

    def __init__(self, message: str = "Invalid response format from server") -> None:
        super().__init__(message, status_code=502)


class UpstreamError(ChatServiceError):
    kind = "error"

    def __init__(self, message: str = "Upstream service error (500)") -> None:
        super().__init__(message, status_code=500)
