"""Wiring of the authorizer's components from the environment."""

from __future__ import annotations

import os
import sys
import time
from typing import Any, Mapping, TextIO

from authorizer.domain import TransacaoEvento
from authorizer.handler import LambdaHandler
from authorizer.limite_repository import DynamoLimiteRepository
from authorizer.ports import EventPublisher, MetricsCollector
from authorizer.service import TransacaoService
from authorizer.structured_logger import StructuredLogger
from authorizer.tracing import SimpleTracer
from authorizer.transacao_repository import DynamoTransacaoRepository


def get_env_or_default(
    key: str, default_value: str, environ: Mapping[str, str] | None = None
) -> str:
    """Return the variable's value, or the default when it is unset or empty."""
    env = os.environ if environ is None else environ
    return env.get(key, "") or default_value


def _write_log(stream: TextIO | None, message: str) -> None:
    target = stream if stream is not None else sys.stderr
    target.write(f"{time.strftime('%Y/%m/%d %H:%M:%S')} {message}\n")


def _format_labels(labels: Mapping[str, str]) -> str:
    pairs = " ".join(f"{key}:{labels[key]}" for key in sorted(labels))
    return f"map[{pairs}]"


class SimpleMetricsCollector(MetricsCollector):
    """Metrics collector that writes each metric as a log line."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def increment_transaction_counter(self, status: str) -> None:
        _write_log(self._stream, f"METRIC: transaction_count{{status={status}}} +1")

    def record_transaction_latency(self, duration: float) -> None:
        _write_log(self._stream, f"METRIC: transaction_duration {duration * 1000:.3f}ms")

    def record_business_metric(
        self, metric_name: str, value: float, labels: Mapping[str, str]
    ) -> None:
        _write_log(
            self._stream, f"METRIC: {metric_name}{{{_format_labels(labels)}}} {value:.2f}"
        )

    def increment_error_counter(self, error_type: str) -> None:
        _write_log(self._stream, f"METRIC: error_count{{type={error_type}}} +1")


class SimpleEventPublisher(EventPublisher):
    """Event publisher that writes each event as a log line."""

    def __init__(self, topic_arn: str, stream: TextIO | None = None) -> None:
        self.topic_arn = topic_arn
        self._stream = stream

    def publish_transacao_aprovada(self, evento: TransacaoEvento) -> None:
        _write_log(
            self._stream,
            f"EVENT: Transação aprovada - Cliente: {evento.cliente_id}, "
            f"Valor: {evento.valor:.2f}, ID: {evento.transacao_id}",
        )

    def publish_transacao_rejeitada(self, evento: TransacaoEvento) -> None:
        _write_log(
            self._stream,
            f"EVENT: Transação rejeitada - Cliente: {evento.cliente_id}, "
            f"Valor: {evento.valor:.2f}, ID: {evento.transacao_id}",
        )


def build_handler(client: Any, environ: Mapping[str, str] | None = None) -> LambdaHandler:
    """Assemble the request handler over a DynamoDB client, configured from the environment."""
    clientes_table = get_env_or_default("CLIENTES_TABLE_NAME", "clientes", environ)
    transacoes_table = get_env_or_default("TRANSACOES_TABLE_NAME", "transacoes", environ)
    topic_arn = get_env_or_default(
        "SNS_TOPIC_ARN", "arn:aws:sns:us-east-1:123456789012:transacoes", environ
    )

    logger = StructuredLogger()
    tracer = SimpleTracer("transaction-authorizer")
    metrics = SimpleMetricsCollector()

    service = TransacaoService(
        DynamoLimiteRepository(client, clientes_table),
        DynamoTransacaoRepository(client, transacoes_table),
        SimpleEventPublisher(topic_arn),
        metrics,
        tracer,
        logger,
    )
    return LambdaHandler(service, logger, tracer, metrics)