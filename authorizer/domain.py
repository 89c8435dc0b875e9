"""Domain model of the transaction authorizer: transactions, clients and errors."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DomainError(Exception):
    """Base class of every business error raised by the authorizer."""

    default_message = "erro de domínio"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class LimiteInsuficienteError(DomainError):
    """The client's available limit does not cover the transaction."""

    default_message = "limite insuficiente para autorizar a transação"


class ClienteNaoEncontradoError(DomainError):
    """No client exists with the given identifier."""

    default_message = "cliente não encontrado"


class TransacaoDuplicadaError(DomainError):
    """The transaction was already recorded."""

    default_message = "transação duplicada"


class ValorNegativoError(DomainError):
    """The transaction amount is negative."""

    default_message = "o valor da transação não pode ser negativo"


class ValorZeroError(DomainError):
    """The transaction amount is zero."""

    default_message = "o valor da transação não pode ser zero"


class ClienteInvalidoError(DomainError):
    """The transaction carries no client identifier."""

    default_message = "o ID do cliente é inválido ou não foi fornecido"


class Status(str, Enum):
    """Lifecycle status of a transaction."""

    APROVADA = "APROVADA"
    REJEITADA = "REJEITADA"
    PENDENTE = "PENDENTE"

    def __str__(self) -> str:
        return self.value


class TipoEvento(str, Enum):
    """Kind of event published for a processed transaction."""

    TRANSACAO_APROVADA = "TRANSACAO_APROVADA"
    TRANSACAO_REJEITADA = "TRANSACAO_REJEITADA"
    TRANSACAO_PROCESSADA = "TRANSACAO_PROCESSADA"

    def __str__(self) -> str:
        return self.value


@dataclass
class Cliente:
    """A client and its credit limits, in cents."""

    id: str = ""
    nome: str = ""
    email: str = ""
    limite_credito: int = 0
    limite_atual: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TransacaoEvento:
    """Event describing a processed transaction, for downstream systems."""

    evento: TipoEvento
    transacao_id: str
    cliente_id: str
    valor: float
    timestamp: datetime | None
    correlation_id: str


_EVENTO_POR_STATUS = {
    Status.APROVADA: TipoEvento.TRANSACAO_APROVADA,
    Status.REJEITADA: TipoEvento.TRANSACAO_REJEITADA,
}


@dataclass
class Transacao:
    """A financial transaction to be authorized."""

    id: str = ""
    cliente_id: str = ""
    valor: float = 0.0
    status: Status = Status.PENDENTE
    timestamp: datetime | None = None
    correlation_id: str = ""

    @classmethod
    def new(cls, cliente_id: str, valor: float, correlation_id: str) -> Transacao:
        """Create a pending transaction with a fresh id and the current time."""
        return cls(
            id=str(uuid.uuid4()),
            cliente_id=cliente_id,
            valor=valor,
            status=Status.PENDENTE,
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id,
        )

    def valida(self) -> None:
        """Raise the matching domain error if the transaction is not valid."""
        if self.valor < 0:
            raise ValorNegativoError()
        if self.valor == 0:
            raise ValorZeroError()
        if not self.cliente_id:
            raise ClienteInvalidoError()

    def aprovar(self) -> None:
        """Mark the transaction as approved."""
        self.status = Status.APROVADA

    def rejeitar(self) -> None:
        """Mark the transaction as rejected."""
        self.status = Status.REJEITADA

    def to_evento(self) -> TransacaoEvento:
        """Build the event that announces this transaction."""
        return TransacaoEvento(
            evento=_EVENTO_POR_STATUS.get(self.status, TipoEvento.TRANSACAO_PROCESSADA),
            transacao_id=self.id,
            cliente_id=self.cliente_id,
            valor=self.valor,
            timestamp=self.timestamp,
            correlation_id=self.correlation_id,
        )