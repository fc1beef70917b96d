# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Credential entity: table manager and typed variants."""

from .schema import (
    Credential,
    CredentialCreate,
    EmailCredential,
    OtherChannelCredential,
    ProviderApiCredential,
    SmtpCredential,
    credential_from_row,
)
from .table import CredentialsTable, hash_api_key

__all__ = [
    "Credential",
    "CredentialCreate",
    "CredentialsTable",
    "EmailCredential",
    "OtherChannelCredential",
    "ProviderApiCredential",
    "SmtpCredential",
    "credential_from_row",
    "hash_api_key",
]
