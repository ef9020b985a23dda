"""
Relay Exceptions

Exception hierarchy:
    RelayError
    ├── EventParseError                - Transcript payload could not be decoded
    └── PipelineError                  - Audio/transcription pipeline failure
        ├── MissingCredentialError         - Required credential/config absent
        ├── TranscriptionConnectionError   - Transport to the service failed
        └── TranscriptionServiceError      - Service reported an error message
"""


class RelayError(Exception):
    """Base exception for all relay errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class EventParseError(RelayError):
    """A transcript event payload is malformed."""

    def __init__(self, reason: str, payload: object = None) -> None:
        self.payload = payload
        super().__init__(message=f"Malformed transcript event: {reason}")


class PipelineError(RelayError):
    """Audio pipeline failure."""


class MissingCredentialError(PipelineError):
    """The transcription backend needs a credential that is not configured."""

    def __init__(self, backend: str, variable: str) -> None:
        self.backend = backend
        self.variable = variable
        super().__init__(
            message=f"{variable} is not defined",
            details=f"required by the '{backend}' transcription backend",
        )


class TranscriptionConnectionError(PipelineError):
    """The connection to the transcription service failed."""

    def __init__(self, uri: str, reason: str) -> None:
        self.uri = uri
        super().__init__(message=f"Transcription connection failed: {uri}", details=reason)


class TranscriptionServiceError(PipelineError):
    """The transcription service sent an error signal."""

    def __init__(self, backend: str, reason: str) -> None:
        self.backend = backend
        super().__init__(message=f"{backend} reported an error", details=reason)
