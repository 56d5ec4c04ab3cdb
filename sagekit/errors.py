"""Exceptions raised by sagekit.

Client-side validation fails fast with :class:`ValidationError` before any
request reaches SageMaker. Errors returned by the service itself propagate as
``botocore.exceptions.ClientError`` unless a caller documents otherwise.
"""

from __future__ import annotations

from typing import Sequence


class SagekitError(Exception):
    """Base exception for sagekit errors."""

    pass


class ValidationError(SagekitError, ValueError):
    """A parameter failed client-side validation."""

    pass


class NotFoundError(SagekitError):
    """A remote artifact (e.g. a monitoring file in S3) does not exist."""

    pass


class UnexpectedClientError(SagekitError):
    """The service answered with an error the caller did not expect."""

    pass


class UnexpectedStatusError(SagekitError):
    """A job reached a terminal status other than the allowed ones.

    Attributes:
        allowed_statuses: Statuses the caller would have accepted.
        actual_status: The status the job actually reached.
    """

    def __init__(
        self,
        message: str,
        allowed_statuses: Sequence[str],
        actual_status: str,
    ) -> None:
        super().__init__(message)
        self.allowed_statuses = list(allowed_statuses)
        self.actual_status = actual_status


class CapacityError(UnexpectedStatusError):
    """The job failed because SageMaker had no capacity for it."""

    pass
