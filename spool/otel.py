"""
spool.otel
AUTHOR: carter-vin

OpenTelemetry SDK span exporter backed by the spool writer

Pipeline:
- ReadableSpan -> OTLP ResourceSpans (encode_spans from the OTLP common encoder)
- ResourceSpans -> bytes (SerializeToString, deterministic per config)
- bytes -> SpoolWriter.export (one framed batch per export call)
"""

from __future__ import annotations

from typing import Sequence

from opentelemetry.exporter.otlp.proto.common.trace_encoder import encode_spans
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from spool.config import SPOOL_VERSION, SpoolConfig
from spool.errors import SpoolError
from spool.logging import emit_failure
from spool.writer import SpoolWriter


def spans_to_records(spans: Sequence[ReadableSpan], *, deterministic: bool = False) -> list[bytes]:
    """
    Serialize SDK spans into one record per ResourceSpans message
    """
    if not spans:
        return []
    request = encode_spans(spans)
    return [
        resource_spans.SerializeToString(deterministic=deterministic)
        for resource_spans in request.resource_spans
    ]


class FilesSpanExporter(SpanExporter):
    """
    SpanExporter writing batches to the rotating spool.

    Pair with BatchSpanProcessor so each processor batch becomes one framed
    batch on disk.
    """

    def __init__(self, config: SpoolConfig, *, writer: SpoolWriter | None = None) -> None:
        self.config = config
        self.writer = writer or SpoolWriter(config)

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        records = spans_to_records(spans, deterministic=self.config.deterministic)
        if not records:
            return SpanExportResult.SUCCESS

        try:
            self.writer.export(records)
        except SpoolError as e:
            emit_failure("spool_write_failed", e, spool_version=SPOOL_VERSION, spans=len(spans))
            return SpanExportResult.FAILURE

        # A serial-exhaustion drop is logged by the writer and not retried
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        """
        Close the spool; failures are logged as spool_shutdown_failed, never raised
        """
        try:
            self.writer.shutdown()
        except SpoolError as e:
            emit_failure(
                "spool_shutdown_failed",
                e,
                spool_version=SPOOL_VERSION,
                errors=len(getattr(e, "errors", ())),
            )

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        # Every batch is flushed as it is written
        return True
