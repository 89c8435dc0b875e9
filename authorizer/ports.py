"""Abstract interfaces the authorization service depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from authorizer.domain import Cliente, Transacao, TransacaoEvento


class LimiteRepository(ABC):
    """Stores clients' credit limits."""

    @abstractmethod
    def get_cliente(self, cliente_id: str) -> Cliente:
        """Return the client, or raise ClienteNaoEncontradoError."""

    @abstractmethod
    def update_limite(self, cliente_id: str, novo_limite: int) -> None:
        """Set the client's current limit, in cents."""

    @abstractmethod
    def debitar_limite_atomica(self, cliente_id: str, valor: int) -> None:
        """Check and debit the limit in one atomic step, in cents."""


class TransacaoRepository(ABC):
    """Stores transactions."""

    @abstractmethod
    def save(self, transacao: Transacao) -> None:
        """Persist a transaction."""

    @abstractmethod
    def get_by_id(self, transacao_id: str) -> Transacao:
        """Return the transaction with the given id."""

    @abstractmethod
    def get_by_cliente_id(self, cliente_id: str, limit: int) -> list[Transacao]:
        """Return up to ``limit`` transactions of a client, newest first."""


class EventPublisher(ABC):
    """Publishes transaction events to downstream systems."""

    @abstractmethod
    def publish_transacao_aprovada(self, evento: TransacaoEvento) -> None:
        """Publish an approval event."""

    @abstractmethod
    def publish_transacao_rejeitada(self, evento: TransacaoEvento) -> None:
        """Publish a rejection event."""


class MetricsCollector(ABC):
    """Collects metrics for observability."""

    @abstractmethod
    def increment_transaction_counter(self, status: str) -> None:
        """Count one transaction with the given status."""

    @abstractmethod
    def record_transaction_latency(self, duration: float) -> None:
        """Record a latency, in seconds."""

    @abstractmethod
    def record_business_metric(
        self, metric_name: str, value: float, labels: Mapping[str, str]
    ) -> None:
        """Record a business value with labels."""

    @abstractmethod
    def increment_error_counter(self, error_type: str) -> None:
        """Count one error of the given type."""


class DistributedTracer(ABC):
    """Creates and finishes tracing spans."""

    @abstractmethod
    def start_span(self, operation_name: str) -> Any:
        """Start a span and make it current; return it."""

    @abstractmethod
    def finish_span(self, span: Any, error: BaseException | None = None) -> None:
        """Finish a span, recording the error if there was one."""

    @abstractmethod
    def add_tag(self, span: Any, key: str, value: Any) -> None:
        """Attach a tag to a span."""


class Logger(ABC):
    """Structured logger."""

    @abstractmethod
    def info(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        """Log at info level."""

    @abstractmethod
    def error(
        self, msg: str, error: BaseException, fields: Mapping[str, Any] | None = None
    ) -> None:
        """Log an error at error level."""

    @abstractmethod
    def warn(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        """Log at warning level."""

    @abstractmethod
    def debug(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        """Log at debug level."""