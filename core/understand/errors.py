# core/understand/errors.py
from typing import Optional


class ProviderError(Exception):
    """Base error for analysis provider routing and calls"""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            return f"[{self.code} {self.status_code}] {message}"
        return f"[{self.code}] {message}"


class ProviderUnavailableError(ProviderError):
    """No provider qualifies for the requested capability"""
    code = "NO_PROVIDER"


class UnsupportedCapabilityError(ProviderError):
    """The active provider exists but lacks the requested capability"""
    code = "UNSUPPORTED"


class ProviderCallError(ProviderError):
    """Network / HTTP / malformed-response failure of a single provider call"""
    code = "API_ERROR"
