# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Credential schemas and the typed variants built from stored rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ...errors import IncompleteCredential

CHANNEL_TYPES = ("email", "sms", "whatsapp")
PROVIDERS = ("smtp", "zoho")


class CredentialCreate(BaseModel):
    """Payload for registering a credential.

    Attributes:
        id: Credential identifier used by callers.
        name: Display name. For provider credentials it is the from address.
        type: Channel the credential enables.
        provider: Email delivery strategy (direct SMTP or provider REST API).
        api_key: Raw per-credential key, stored hashed.
        host: SMTP server hostname.
        port: SMTP server port.
        secure: Use TLS (implicit on 465, STARTTLS otherwise).
        username: SMTP user, or OAuth client id for providers.
        password: SMTP password, or OAuth client secret for providers.
    """

    model_config = ConfigDict(extra="forbid")

    id: Annotated[
        str,
        Field(min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_.-]+$",
              description="Credential identifier")
    ]
    name: Annotated[str, Field(min_length=1, max_length=255, description="Display name")]
    type: Annotated[
        Literal["email", "sms", "whatsapp"],
        Field(default="email", description="Channel type")
    ]
    provider: Annotated[
        Literal["smtp", "zoho"],
        Field(default="smtp", description="Email delivery strategy")
    ]
    api_key: Annotated[str | None, Field(default=None, min_length=8, description="Raw API key")]
    host: Annotated[str | None, Field(default=None, max_length=255, description="SMTP host")]
    port: Annotated[int | None, Field(default=None, ge=1, le=65535, description="SMTP port")]
    secure: Annotated[bool | None, Field(default=None, description="Use TLS")]
    username: Annotated[str | None, Field(default=None, max_length=255)]
    password: Annotated[str | None, Field(default=None, max_length=255)]


@dataclass(frozen=True)
class SmtpCredential:
    """Email credential delivered over direct SMTP."""

    id: str
    name: str
    host: str
    port: int
    secure: bool
    username: str | None = None
    password: str | None = None

    type = "email"

    @property
    def identity(self) -> tuple[Any, ...]:
        return ("smtp", self.id, self.host, self.port, self.secure, self.username, self.password)


@dataclass(frozen=True)
class ProviderApiCredential:
    """Email credential delivered through a provider REST API (OAuth client credentials)."""

    id: str
    name: str
    provider: str
    client_id: str
    client_secret: str

    type = "email"

    @property
    def from_address(self) -> str:
        return self.name

    @property
    def identity(self) -> tuple[Any, ...]:
        return (self.provider, self.id, self.client_id, self.client_secret)


@dataclass(frozen=True)
class OtherChannelCredential:
    """Credential for a non-email channel (sms, whatsapp)."""

    id: str
    name: str
    type: str


Credential = SmtpCredential | ProviderApiCredential | OtherChannelCredential
EmailCredential = SmtpCredential | ProviderApiCredential


def credential_from_row(row: dict[str, Any]) -> Credential:
    """Build the typed credential variant for a stored row.

    Raises:
        IncompleteCredential: An email row lacks the fields its provider needs.
    """
    cred_id = row["id"]
    if row.get("type") != "email":
        return OtherChannelCredential(id=cred_id, name=row["name"], type=row.get("type") or "")

    provider = row.get("provider") or "smtp"
    if provider != "smtp":
        missing = [f for f in ("username", "password") if not row.get(f)]
        if missing:
            raise IncompleteCredential(cred_id, missing)
        return ProviderApiCredential(
            id=cred_id,
            name=row["name"],
            provider=provider,
            client_id=row["username"],
            client_secret=row["password"],
        )

    missing = [f for f in ("host", "port", "secure") if row.get(f) is None or row.get(f) == ""]
    if missing:
        raise IncompleteCredential(cred_id, missing)
    return SmtpCredential(
        id=cred_id,
        name=row["name"],
        host=row["host"],
        port=int(row["port"]),
        secure=bool(row["secure"]),
        username=row.get("username") or None,
        password=row.get("password") or None,
    )
