"""Metrics exporter writing OTLP protobuf payloads to a user_events tracepoint."""

from __future__ import annotations

import enum
import logging

from .tracepoint import Tracepoint, TracepointError
from .transform import ResourceMetrics, Temporality, transform_resource_metrics

_log = logging.getLogger(__name__)


class InstrumentKind(enum.Enum):
    """Kinds of metric instruments."""

    COUNTER = "counter"
    UP_DOWN_COUNTER = "up_down_counter"
    HISTOGRAM = "histogram"
    OBSERVABLE_COUNTER = "observable_counter"
    OBSERVABLE_UP_DOWN_COUNTER = "observable_up_down_counter"
    OBSERVABLE_GAUGE = "observable_gauge"


_CUMULATIVE_KINDS = frozenset(
    {InstrumentKind.UP_DOWN_COUNTER, InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER}
)


class MetricsExporter:
    """Push collected metrics to the otlp_metrics tracepoint when it is enabled.

    Without a tracepoint given, one is created and registered; a failed
    registration is logged and leaves the exporter disabled.
    """

    def __init__(self, tracepoint=None) -> None:
        self._owns_tracepoint = tracepoint is None
        if tracepoint is None:
            tracepoint = Tracepoint()
            try:
                tracepoint.register()
            except TracepointError as err:
                _log.error("%s", err)
        self._tracepoint = tracepoint

    def temporality(self, kind: InstrumentKind) -> Temporality:
        """Delta for everything but up-down counters, matching OTLP delta exporters."""
        return Temporality.CUMULATIVE if InstrumentKind(kind) in _CUMULATIVE_KINDS else Temporality.DELTA

    def export(self, metrics: ResourceMetrics) -> None:
        """Encode and write the metrics if a listener is attached."""
        if not self._tracepoint.enabled():
            return
        payload = transform_resource_metrics(metrics).encode()
        try:
            self._tracepoint.write(payload)
        except TracepointError as err:
            _log.warning("Failed to write metrics: %s", err)

    def force_flush(self) -> bool:
        """Report that nothing is pending: every export is written immediately."""
        return True

    def shutdown(self) -> None:
        """Unregister the tracepoint if this exporter created it."""
        if self._owns_tracepoint:
            self._tracepoint.close()

    def __repr__(self) -> str:
        return "user_events metrics exporter"