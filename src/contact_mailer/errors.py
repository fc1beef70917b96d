# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the send workflow.

Every error raised across the core boundary is a :class:`MailerError`
carrying a machine readable ``code``, the ``stage`` of the workflow that
failed and whether a dispatch was actually ``attempted``. Callers use
``attempted`` to tell "we never tried" (no outbox row survives) from
"we tried and the transport rejected it" (row recorded as failed).
"""

from __future__ import annotations

from typing import Any

STAGE_VALIDATION = "validation"
STAGE_CREDENTIAL = "credential"
STAGE_TRANSPORT = "transport"
STAGE_ATTACHMENTS = "attachments"
STAGE_DISPATCH = "dispatch"
STAGE_STORAGE = "storage"
STAGE_VERIFICATION = "verification"


class MailerError(Exception):
    """Base class for every error surfaced by the mailer."""

    code = "mailer_error"
    stage = STAGE_STORAGE
    attempted = False

    def __init__(self, message: str, *, stage: str | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def to_dict(self) -> dict[str, object]:
        return {
            "error": str(self),
            "code": self.code,
            "stage": self.stage,
            "attempted": self.attempted,
        }


class ValidationError(MailerError):
    """Raised when a message payload is malformed."""

    code = "validation_error"
    stage = STAGE_VALIDATION

    def __init__(self, message: str, details: list[Any] | None = None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["details"] = self.details
        return data


class CredentialNotFound(MailerError):
    """Raised when no credential exists for the requested id."""

    code = "credential_not_found"
    stage = STAGE_CREDENTIAL

    def __init__(self, credential_id: str):
        super().__init__(f"Credential '{credential_id}' not found")
        self.credential_id = credential_id


class InvalidCredentialType(MailerError):
    """Raised when the credential is not meant for the requested channel."""

    code = "invalid_credential_type"
    stage = STAGE_CREDENTIAL

    def __init__(self, credential_id: str, actual: str, expected: str = "email"):
        super().__init__(
            f"Invalid credential type for '{credential_id}': "
            f"expected '{expected}', got '{actual}'"
        )
        self.credential_id = credential_id
        self.actual = actual
        self.expected = expected


class IncompleteCredential(MailerError):
    """Raised when required connection fields are missing."""

    code = "incomplete_credential"
    stage = STAGE_CREDENTIAL

    def __init__(self, credential_id: str, missing: list[str]):
        super().__init__(
            f"Credential '{credential_id}' is missing required fields: {', '.join(missing)}"
        )
        self.credential_id = credential_id
        self.missing = missing


class TransportConstructionFailed(MailerError):
    """Raised when a transport cannot be built for a credential."""

    code = "transport_construction_failed"
    stage = STAGE_TRANSPORT


class AttachmentUploadFailed(MailerError):
    """Raised when the provider does not return a usable attachment reference."""

    code = "attachment_upload_failed"
    stage = STAGE_ATTACHMENTS

    def __init__(self, filename: str, reason: str, detail: object = None):
        super().__init__(f"Failed to upload attachment '{filename}': {reason}")
        self.filename = filename
        self.detail = detail


class DispatchFailed(MailerError):
    """Raised by a transport when the message could not be handed over."""

    code = "dispatch_failed"
    stage = STAGE_DISPATCH
    attempted = True


class SendFailed(MailerError):
    """Raised to the caller after a failed dispatch has been recorded."""

    code = "send_failed"
    stage = STAGE_DISPATCH
    attempted = True

    def __init__(self, message_id: int, cause: BaseException):
        super().__init__(f"Failed to send email: {cause}")
        self.message_id = message_id
        self.cause = cause

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["messageId"] = self.message_id
        return data


class StorageError(MailerError):
    """Raised for any database failure."""

    code = "storage_error"
    stage = STAGE_STORAGE


class VerificationFailed(MailerError):
    """Raised when a connection handshake does not succeed."""

    code = "verification_failed"
    stage = STAGE_VERIFICATION


class InternalError(MailerError):
    """Raised when an unexpected exception escapes a workflow stage."""

    code = "internal_error"


__all__ = [
    "AttachmentUploadFailed",
    "CredentialNotFound",
    "DispatchFailed",
    "IncompleteCredential",
    "InternalError",
    "InvalidCredentialType",
    "MailerError",
    "SendFailed",
    "StorageError",
    "TransportConstructionFailed",
    "ValidationError",
    "VerificationFailed",
]
