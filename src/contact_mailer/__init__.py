"""Transactional email microservice for internal services.

This package sends email on behalf of other services using per-tenant
credentials stored in a database. Features include:

- Credential-driven transport selection (direct SMTP or a provider REST API)
- A single-slot, credential-keyed transport cache
- Attachment staging for providers that require out-of-band upload
- An outbox audit trail recording every send attempt and its outcome
- FastAPI REST API with service-to-service and per-credential authentication
- SQLite or PostgreSQL persistence

Example:
    Basic usage with the FastAPI application::

        from contact_mailer.core import MailerCore
        from contact_mailer.api import create_app

        core = MailerCore(db_path="/data/contact_mailer.db")
        app = create_app(core)
"""

__version__ = "0.3.0"
