"""
replay.uploader
AUTHOR: carter-vin

Uploader collaborator for replay

Contract:
- upload_traces() receives one decoded, non-empty batch
- raising means the batch was not accepted; replay stops on the first failure

GrpcTraceUploader:
- retries transient gRPC status codes with capped exponential backoff
- spans the collector rejects through partial success are logged and counted,
  the batch itself counts as delivered
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, Sequence

import grpc
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import ExportTraceServiceRequest
from opentelemetry.proto.collector.trace.v1.trace_service_pb2_grpc import TraceServiceStub
from opentelemetry.proto.trace.v1.trace_pb2 import ResourceSpans

from spool.config import SPOOL_VERSION
from spool.logging import emit_event

DEFAULT_ENDPOINT = "[::1]:4317"

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_BACKOFF_S = 0.5
DEFAULT_MAX_BACKOFF_S = 5.0

RETRYABLE_STATUS_CODES = frozenset(
    {
        grpc.StatusCode.CANCELLED,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
        grpc.StatusCode.OUT_OF_RANGE,
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DATA_LOSS,
    }
)


class TraceUploader(Protocol):
    def upload_traces(self, records: Sequence[ResourceSpans]) -> None:
        ...


def _status_code(error: grpc.RpcError) -> grpc.StatusCode | None:
    code = getattr(error, "code", None)
    if callable(code):
        return code()
    return None


def backoff_delay(attempt: int, *, initial: float, maximum: float) -> float:
    """
    Delay before retry number `attempt` (1-based): initial * 2^(attempt-1), capped
    """
    return min(maximum, initial * (2 ** (attempt - 1)))


class GrpcTraceUploader:
    """
    OTLP/gRPC uploader using TraceService.Export

    insecure:
    - True: clear-text channel
    - False: TLS with system roots
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        insecure: bool = False,
        timeout: float = 10.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF_S,
        max_backoff: float = DEFAULT_MAX_BACKOFF_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint is required")

        self.endpoint = endpoint
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.rejected_spans = 0
        self._sleep = sleep

        if insecure:
            self._channel = grpc.insecure_channel(endpoint)
        else:
            self._channel = grpc.secure_channel(endpoint, grpc.ssl_channel_credentials())
        self._stub = TraceServiceStub(self._channel)

    def upload_traces(self, records: Sequence[ResourceSpans]) -> None:
        """
        Export one batch, retrying transient failures

        Failure semantics:
        - non-retryable status codes raise immediately
        - retryable ones raise after max_attempts
        """
        request = ExportTraceServiceRequest(resource_spans=list(records))

        attempt = 1
        while True:
            try:
                response = self._stub.Export(request, timeout=self.timeout)
                break
            except grpc.RpcError as e:
                if _status_code(e) not in RETRYABLE_STATUS_CODES or attempt >= self.max_attempts:
                    raise
                self._sleep(backoff_delay(attempt, initial=self.initial_backoff, maximum=self.max_backoff))
                attempt += 1

        partial = response.partial_success
        if partial.rejected_spans:
            self.rejected_spans += partial.rejected_spans
            emit_event(
                "replay_spans_rejected",
                spool_version=SPOOL_VERSION,
                endpoint=self.endpoint,
                rejected_spans=partial.rejected_spans,
                message=partial.error_message,
            )

    def close(self) -> None:
        self._channel.close()
