# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy shared by the SDK.

The SDK distinguishes four families of failures:

- **Configuration errors** (ArgumentError, InvalidConfiguration): caller misuse
  detected before any network call. Never retried.
- **API errors** (ApiError, NotFoundError): the platform API answered with a
  non-success status code. Surfaced verbatim; retrying is up to the caller.
- **Timeout errors** (PollTimeoutError): a wait deadline elapsed. The remote
  operation may still succeed, so these are recoverable.
- **Domain invariant violations** (NotSignedError, AlreadySignedError,
  IllegalOperationError): an operation that can never succeed for the object's
  current state.
"""

from typing import Optional


class ApiError(Exception):
    """The API returned a non-success status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ApiError):
    """The requested resource was not found, or the API returned no data for it"""

    resource: str

    def __init__(self, message: str, resource: str, status_code: int = 404):
        super().__init__(message, status_code)
        self.resource = resource


class ArgumentError(ValueError):
    """An argument passed to the SDK is invalid"""

    DEFAULT_MESSAGE = "Argument Error"

    def __init__(self, message: str = DEFAULT_MESSAGE):
        super().__init__(message)


class InvalidConfiguration(Exception):
    """The client or object is not configured for the requested operation"""

    DEFAULT_MESSAGE = "Invalid configuration"

    def __init__(self, message: str = DEFAULT_MESSAGE):
        super().__init__(message)


class InternalError(Exception):
    """The SDK received a model it cannot represent"""

    DEFAULT_MESSAGE = "Internal Error"

    def __init__(self, message: str = DEFAULT_MESSAGE):
        super().__init__(message)


class InvalidUnsignedPayload(Exception):
    """The unsigned payload of a transaction could not be decoded"""

    DEFAULT_MESSAGE = "Invalid unsigned payload"

    def __init__(self, message: str = DEFAULT_MESSAGE):
        super().__init__(message)


class NotSignedError(Exception):
    """A resource must be signed before this operation"""

    def __init__(self, message: str = "Resource not signed"):
        super().__init__(message)


class AlreadySignedError(Exception):
    """A resource has already been signed"""

    DEFAULT_MESSAGE = "Resource already signed"

    def __init__(self, message: str = DEFAULT_MESSAGE):
        super().__init__(message)


class IllegalOperationError(Exception):
    """The operation is not allowed for the object's current state"""

    def __init__(self, message: str):
        super().__init__(message)


class PollTimeoutError(TimeoutError):
    """A wait deadline elapsed before the resource reached a terminal state.

    The remote operation is not cancelled and may still complete afterwards.
    """

    timeout_seconds: Optional[float]

    def __init__(self, message: str, timeout_seconds: Optional[float] = None):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class WaitAbortedError(Exception):
    """The caller's abort signal was set while polling"""
