# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transports: direct SMTP and provider REST API."""

from .base import StagedAttachment, Transport, TransportTimeouts
from .provider import ProviderTransport
from .resolver import TransportResolver
from .smtp import SmtpTransport, build_email
from .stager import AttachmentStager

__all__ = [
    "AttachmentStager",
    "ProviderTransport",
    "SmtpTransport",
    "StagedAttachment",
    "Transport",
    "TransportResolver",
    "TransportTimeouts",
    "build_email",
]
