"""OpenTelemetry metrics instruments for the resilience and proposal layers.

Instruments are created lazily from the global MeterProvider, so callers do
not need to pass a Meter instance around.  When
OTEL_EXPORTER_OTLP_ENDPOINT is not set, the global no-op MeterProvider is
used and all recordings are silent no-ops.

Instruments
-----------
  tempo.service.attempts_total        Counter  (labels: service, method, outcome)
  tempo.offline_queue.enqueued_total  Counter  (label: service)
  tempo.offline_queue.evicted_total   Counter
  tempo.offline_queue.replayed_total  Counter  (label: outcome=applied|retry|dropped)
  tempo.proposals.created_total       Counter  (label: workflow)
  tempo.proposals.consumed_total      Counter  (label: workflow)
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "tempo"


def init_metrics(service_name: str) -> metrics.Meter:
    """Initialize OpenTelemetry metrics for the process.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a real MeterProvider
    with a periodic OTLP gRPC exporter.  Otherwise, the global no-op
    MeterProvider is used and all recordings are silent.
    """
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint), export_interval_millis=15_000
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider (no-op before init)."""
    return metrics.get_meter(_METER_NAME)


class TempoMetrics:
    """Bundle of counters used by the proxy, offline queue and proposal store."""

    def __init__(self) -> None:
        meter = get_meter()
        self._attempts = meter.create_counter(
            name="tempo.service.attempts_total",
            description="Attempts made against external services",
            unit="attempts",
        )
        self._enqueued = meter.create_counter(
            name="tempo.offline_queue.enqueued_total",
            description="Mutating operations queued for later replay",
            unit="operations",
        )
        self._evicted = meter.create_counter(
            name="tempo.offline_queue.evicted_total",
            description="Queued operations evicted because the queue was full",
            unit="operations",
        )
        self._replayed = meter.create_counter(
            name="tempo.offline_queue.replayed_total",
            description="Replay outcomes for queued operations",
            unit="operations",
        )
        self._proposals_created = meter.create_counter(
            name="tempo.proposals.created_total",
            description="Proposals stored by workflows",
            unit="proposals",
        )
        self._proposals_consumed = meter.create_counter(
            name="tempo.proposals.consumed_total",
            description="Proposals consumed for execution",
            unit="proposals",
        )

    def record_attempt(self, service: str, method: str, outcome: str) -> None:
        self._attempts.add(1, {"service": service, "method": method, "outcome": outcome})

    def record_enqueued(self, service: str) -> None:
        self._enqueued.add(1, {"service": service})

    def record_evicted(self) -> None:
        self._evicted.add(1)

    def record_replayed(self, outcome: str) -> None:
        self._replayed.add(1, {"outcome": outcome})

    def record_proposal_created(self, workflow_type: str) -> None:
        self._proposals_created.add(1, {"workflow": workflow_type})

    def record_proposal_consumed(self, workflow_type: str) -> None:
        self._proposals_consumed.add(1, {"workflow": workflow_type})
