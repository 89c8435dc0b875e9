import uuid
from datetime import datetime, timezone

import pytest

from authorizer.domain import (
    ClienteInvalidoError,
    ClienteNaoEncontradoError,
    DomainError,
    LimiteInsuficienteError,
    Status,
    TipoEvento,
    Transacao,
    TransacaoDuplicadaError,
    ValorNegativoError,
    ValorZeroError,
)


def test_new_transacao():
    transacao = Transacao.new("12345", 99.90, "test-correlation")

    assert transacao.cliente_id == "12345"
    assert transacao.valor == 99.90
    assert transacao.correlation_id == "test-correlation"
    assert transacao.id != ""
    assert str(uuid.UUID(transacao.id)) == transacao.id
    assert transacao.status == Status.PENDENTE
    assert transacao.timestamp is not None
    assert transacao.timestamp > datetime.min.replace(tzinfo=timezone.utc)


def test_valida_transacao_valida():
    transacao = Transacao(cliente_id="12345", valor=99.90)
    assert transacao.valida() is None
    assert transacao.status == Status.PENDENTE


@pytest.mark.parametrize(
    ("cliente_id", "valor", "expected"),
    [
        ("12345", -10.0, ValorNegativoError),
        ("12345", 0.0, ValorZeroError),
        ("", 99.90, ClienteInvalidoError),
    ],
)
def test_valida_erros(cliente_id, valor, expected):
    transacao = Transacao(cliente_id=cliente_id, valor=valor)
    with pytest.raises(expected):
        transacao.valida()


def test_valor_negativo_tem_precedencia_sobre_cliente():
    with pytest.raises(ValorNegativoError):
        Transacao(cliente_id="", valor=-1.0).valida()


@pytest.mark.parametrize(
    ("error_class", "message"),
    [
        (LimiteInsuficienteError, "limite insuficiente para autorizar a transação"),
        (ClienteNaoEncontradoError, "cliente não encontrado"),
        (TransacaoDuplicadaError, "transação duplicada"),
        (ValorNegativoError, "o valor da transação não pode ser negativo"),
        (ValorZeroError, "o valor da transação não pode ser zero"),
        (ClienteInvalidoError, "o ID do cliente é inválido ou não foi fornecido"),
    ],
)
def test_error_messages(error_class, message):
    error = error_class()
    assert str(error) == message
    assert isinstance(error, DomainError)


def test_aprovar():
    transacao = Transacao.new("12345", 99.90, "test")
    transacao.aprovar()
    assert transacao.status == Status.APROVADA


def test_rejeitar():
    transacao = Transacao.new("12345", 99.90, "test")
    transacao.rejeitar()
    assert transacao.status == Status.REJEITADA


def test_to_evento():
    transacao = Transacao.new("12345", 99.90, "test-correlation")
    transacao.aprovar()

    evento = transacao.to_evento()

    assert evento.evento == TipoEvento.TRANSACAO_APROVADA
    assert evento.transacao_id == transacao.id
    assert evento.cliente_id == transacao.cliente_id
    assert evento.valor == transacao.valor
    assert evento.correlation_id == transacao.correlation_id
    assert evento.timestamp == transacao.timestamp


def test_to_evento_rejeitada():
    transacao = Transacao.new("12345", 99.90, "test-correlation")
    transacao.rejeitar()
    assert transacao.to_evento().evento == TipoEvento.TRANSACAO_REJEITADA


def test_to_evento_pendente():
    transacao = Transacao.new("12345", 99.90, "test-correlation")
    assert transacao.to_evento().evento.value == "TRANSACAO_PROCESSADA"


def test_properties():
    transacao = Transacao.new("test", 100.0, "correlation")
    assert transacao.timestamp > datetime.min.replace(tzinfo=timezone.utc)
    assert transacao.status == Status.PENDENTE

    transacao2 = Transacao.new("test", 100.0, "correlation")
    assert transacao.id != transacao2.id
    assert transacao.timestamp <= transacao2.timestamp