# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the contact mailer.

All metrics use the ``cm_`` prefix (contact-mailer).

Metrics exposed:
    - ``cm_sent_total``: Counter of successfully sent emails per credential.
    - ``cm_failed_total``: Counter of dispatch failures per credential.
    - ``cm_aborted_total``: Counter of attempts rolled back before dispatch,
      per credential and workflow stage.
    - ``cm_transport_builds_total``: Counter of transports built, per kind.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class MailerMetrics:
    """Prometheus metrics collector for the send workflow.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        sent: Counter tracking successfully sent emails.
        failed: Counter tracking attempted but rejected dispatches.
        aborted: Counter tracking attempts that never reached dispatch.
        transport_builds: Counter tracking transport constructions.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics with an optional custom registry.

        Args:
            registry: Optional Prometheus CollectorRegistry. If not provided,
                a new registry is created.
        """
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "cm_sent_total",
            "Total sent emails",
            ["credential_id"],
            registry=self.registry,
        )
        self.failed = Counter(
            "cm_failed_total",
            "Total failed dispatches",
            ["credential_id"],
            registry=self.registry,
        )
        self.aborted = Counter(
            "cm_aborted_total",
            "Total send attempts rolled back before dispatch",
            ["credential_id", "stage"],
            registry=self.registry,
        )
        self.transport_builds = Counter(
            "cm_transport_builds_total",
            "Total transports built",
            ["kind"],
            registry=self.registry,
        )

    def inc_sent(self, credential_id: str) -> None:
        self.sent.labels(credential_id=credential_id or "default").inc()

    def inc_failed(self, credential_id: str) -> None:
        self.failed.labels(credential_id=credential_id or "default").inc()

    def inc_aborted(self, credential_id: str, stage: str) -> None:
        self.aborted.labels(credential_id=credential_id or "default", stage=stage).inc()

    def inc_transport_build(self, kind: str) -> None:
        self.transport_builds.labels(kind=kind).inc()

    def generate_latest(self) -> bytes:
        """Render all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
