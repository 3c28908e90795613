from __future__ import annotations


class RelayError(Exception):
    """Base for failures the relay reports to its caller as `{"error": message}`."""

    status_code = 500

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or "Internal server error"
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class MissingMessages(RelayError):
    status_code = 400

    def __init__(self, message: str = "Messages are required") -> None:
        super().__init__(message)


class MissingCredential(RelayError):
    status_code = 400

    def __init__(self, message: str = "API key is required") -> None:
        super().__init__(message)


class UnknownProvider(RelayError):
    status_code = 400

    def __init__(self, message: str = "Invalid provider") -> None:
        super().__init__(message)


class ProviderConfigurationFailure(RelayError):
    status_code = 500


class StreamStartFailure(RelayError):
    status_code = 500


class ProviderError(Exception):
    """Raised by provider adapters when the upstream API rejects a call."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class ChatClientError(Exception):
    """Consumer-side failure, shown to the user as a notification."""


class LocalPreconditionFailure(ChatClientError):
    pass


class RelayCallFailure(ChatClientError):
    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)
