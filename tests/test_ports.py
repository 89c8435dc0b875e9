import io
import json

import pytest

from authorizer.domain import (
    Cliente,
    ClienteNaoEncontradoError,
    LimiteInsuficienteError,
    Status,
    Transacao,
)
from authorizer.ports import (
    DistributedTracer,
    EventPublisher,
    LimiteRepository,
    Logger,
    MetricsCollector,
    TransacaoRepository,
)
from authorizer.structured_logger import StructuredLogger
from authorizer.tracing import SimpleTracer


@pytest.mark.parametrize(
    "port",
    [
        LimiteRepository,
        TransacaoRepository,
        EventPublisher,
        MetricsCollector,
        DistributedTracer,
        Logger,
    ],
)
def test_ports_cannot_be_instantiated(port):
    with pytest.raises(TypeError):
        port()


def test_partial_logger_is_rejected_complete_one_logs():
    class OnlyInfo(Logger):
        def info(self, msg, fields=None):
            pass

    with pytest.raises(TypeError):
        OnlyInfo()

    stream = io.StringIO()
    logger: Logger = StructuredLogger(stream=stream)
    logger.info("ok", {"k": 1})
    record = json.loads(stream.getvalue())
    assert record["msg"] == "ok"
    assert record["k"] == 1


class _MemoryLimites(LimiteRepository):
    def __init__(self):
        self.clientes = {}

    def get_cliente(self, cliente_id):
        try:
            return self.clientes[cliente_id]
        except KeyError:
            raise ClienteNaoEncontradoError() from None

    def update_limite(self, cliente_id, novo_limite):
        self.get_cliente(cliente_id).limite_atual = novo_limite

    def debitar_limite_atomica(self, cliente_id, valor):
        cliente = self.get_cliente(cliente_id)
        if cliente.limite_atual < valor:
            raise LimiteInsuficienteError()
        cliente.limite_atual -= valor


def test_repository_port_partial_rejected_complete_works():
    class OnlyGet(LimiteRepository):
        def get_cliente(self, cliente_id):
            return Cliente(id=cliente_id)

    with pytest.raises(TypeError):
        OnlyGet()

    repo: LimiteRepository = _MemoryLimites()
    cliente = Cliente(id="c1", limite_credito=1000, limite_atual=1000)
    repo.clientes["c1"] = cliente

    transacao = Transacao.new("c1", 4.0, "corr")
    assert transacao.status == Status.PENDENTE
    assert transacao.cliente_id == "c1"

    repo.debitar_limite_atomica(transacao.cliente_id, int(transacao.valor * 100))
    assert cliente.limite_atual == 600
    assert cliente.limite_credito == 1000

    with pytest.raises(LimiteInsuficienteError):
        repo.debitar_limite_atomica("c1", 700)
    with pytest.raises(ClienteNaoEncontradoError):
        repo.get_cliente("missing")


def test_package_implementations_satisfy_ports():
    assert issubclass(StructuredLogger, Logger)
    assert issubclass(SimpleTracer, DistributedTracer)
    assert not StructuredLogger.__abstractmethods__
    assert not SimpleTracer.__abstractmethods__

    stream = io.StringIO()
    logger: Logger = StructuredLogger(stream=stream)
    logger.error("falhou", RuntimeError("boom"), {"x": "y"})
    record = json.loads(stream.getvalue())
    assert record["error"] == "boom"
    assert record["x"] == "y"