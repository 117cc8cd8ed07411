from __future__ import annotations


class CrosspostError(Exception):
    """Base class for every error raised by the crosspost core."""


class ConfigurationError(CrosspostError):
    pass


class VaultError(CrosspostError):
    pass


class IntegrityError(VaultError):
    """Authentication tag did not verify (tampered blob or wrong master secret)."""


class FormatError(VaultError):
    """Blob is not valid base64 or is too short to hold salt, iv and tag."""


class CallbackError(CrosspostError):
    pass


class CredentialError(CrosspostError):
    pass


class GenerationError(CrosspostError):
    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class GenerationTimeoutError(GenerationError):
    pass


class NotConnectedError(CrosspostError):
    def __init__(self, platform: str):
        super().__init__(f"{platform} account not connected")
        self.platform = platform


class NotFoundError(CrosspostError):
    pass


class UpstreamError(CrosspostError):
    """A platform API (OAuth or publishing) rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeoutError(UpstreamError):
    pass
