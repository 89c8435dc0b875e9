import copy
from datetime import datetime, timedelta, timezone

import pytest

from authorizer.domain import Status, Transacao
from authorizer.transacao_repository import DynamoTransacaoRepository, TransacaoItem

TABLE = "transacoes"


class ConditionalCheckFailedException(Exception):
    def __init__(self):
        super().__init__("The conditional request failed")
        self.response = {"Error": {"Code": "ConditionalCheckFailedException"}}


class FakeDynamo:
    def __init__(self):
        self.items = {}
        self.queries = []

    def get_item(self, TableName, Key, ConsistentRead=False):
        item = self.items.get(Key["id"]["S"])
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    def put_item(self, TableName, Item, ConditionExpression=None):
        key = Item["id"]["S"]
        if ConditionExpression == "attribute_not_exists(id)" and key in self.items:
            raise ConditionalCheckFailedException()
        self.items[key] = copy.deepcopy(Item)
        return {}

    def query(
        self,
        TableName,
        IndexName,
        KeyConditionExpression,
        ExpressionAttributeValues,
        Limit,
        ScanIndexForward,
    ):
        self.queries.append({"IndexName": IndexName, "ScanIndexForward": ScanIndexForward})
        wanted = ExpressionAttributeValues[":cliente_id"]["S"]
        matches = [
            item for item in self.items.values()
            if item.get("cliente_id", {}).get("S") == wanted
        ]
        matches.sort(key=lambda item: item["timestamp"]["S"], reverse=not ScanIndexForward)
        return {"Items": copy.deepcopy(matches[:Limit])}


class BrokenClient:
    def put_item(self, **kwargs):
        raise OSError("connection reset")

    def get_item(self, **kwargs):
        raise OSError("connection reset")

    def query(self, **kwargs):
        raise OSError("connection reset")


def make_transacao(cliente_id="c-1", valor=99.9, moment=None):
    transacao = Transacao.new(cliente_id, valor, "corr-1")
    if moment is not None:
        transacao.timestamp = moment
    return transacao


def test_save_and_get_round_trip():
    repo = DynamoTransacaoRepository(FakeDynamo(), TABLE)
    original = make_transacao()
    original.aprovar()
    repo.save(original)
    loaded = repo.get_by_id(original.id)
    assert loaded.id == original.id
    assert loaded.cliente_id == original.cliente_id
    assert loaded.valor == original.valor
    assert loaded.status is Status.APROVADA
    assert loaded.correlation_id == original.correlation_id
    assert loaded.timestamp is None


def test_integral_amount_loads_as_float():
    repo = DynamoTransacaoRepository(FakeDynamo(), TABLE)
    original = make_transacao(valor=100.0)
    repo.save(original)
    loaded = repo.get_by_id(original.id)
    assert isinstance(loaded.valor, float) and loaded.valor == 100.0


def test_ttl_is_ninety_days_after_timestamp():
    client = FakeDynamo()
    transacao = make_transacao()
    DynamoTransacaoRepository(client, TABLE).save(transacao)
    ttl = int(client.items[transacao.id]["ttl"]["N"])
    assert ttl - int(transacao.timestamp.timestamp()) == 90 * 24 * 60 * 60


def test_utc_timestamp_is_stored_with_z():
    client = FakeDynamo()
    transacao = make_transacao(moment=datetime(2024, 5, 6, 7, 8, 9, 500, tzinfo=timezone.utc))
    DynamoTransacaoRepository(client, TABLE).save(transacao)
    assert client.items[transacao.id]["timestamp"]["S"] == "2024-05-06T07:08:09Z"


def test_offset_timestamp_keeps_offset():
    client = FakeDynamo()
    zone = timezone(timedelta(hours=-3))
    transacao = make_transacao(moment=datetime(2024, 5, 6, 7, 8, 9, tzinfo=zone))
    DynamoTransacaoRepository(client, TABLE).save(transacao)
    assert client.items[transacao.id]["timestamp"]["S"] == "2024-05-06T07:08:09-03:00"


def test_status_is_stored_as_text():
    client = FakeDynamo()
    transacao = make_transacao()
    transacao.rejeitar()
    DynamoTransacaoRepository(client, TABLE).save(transacao)
    assert client.items[transacao.id]["status"] == {"S": "REJEITADA"}


def test_duplicate_save_is_refused():
    repo = DynamoTransacaoRepository(FakeDynamo(), TABLE)
    transacao = make_transacao()
    repo.save(transacao)
    with pytest.raises(RuntimeError, match=f"transação {transacao.id} já existe"):
        repo.save(transacao)


def test_save_wraps_client_failure():
    repo = DynamoTransacaoRepository(BrokenClient(), TABLE)
    with pytest.raises(RuntimeError, match="erro ao salvar transação") as info:
        repo.save(make_transacao())
    assert isinstance(info.value.__cause__, OSError)


def test_get_missing_transaction():
    repo = DynamoTransacaoRepository(FakeDynamo(), TABLE)
    with pytest.raises(LookupError, match="t-404"):
        repo.get_by_id("t-404")


def test_get_wraps_client_failure():
    repo = DynamoTransacaoRepository(BrokenClient(), TABLE)
    with pytest.raises(RuntimeError, match="erro ao buscar transação t-1"):
        repo.get_by_id("t-1")


def test_get_rejects_malformed_item():
    client = FakeDynamo()
    client.items["t-1"] = {"id": {"S": "t-1"}, "valor": {"S": "caro"}}
    with pytest.raises(RuntimeError, match="erro ao deserializar transação"):
        DynamoTransacaoRepository(client, TABLE).get_by_id("t-1")


def test_get_by_cliente_returns_newest_first_within_limit():
    client = FakeDynamo()
    repo = DynamoTransacaoRepository(client, TABLE)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    saved = [make_transacao(moment=base + timedelta(days=n)) for n in range(4)]
    for transacao in saved:
        repo.save(transacao)
    repo.save(make_transacao(cliente_id="c-2", moment=base + timedelta(days=9)))

    found = repo.get_by_cliente_id("c-1", 3)

    assert [t.id for t in found] == [t.id for t in reversed(saved)][:3]
    assert all(t.cliente_id == "c-1" for t in found)
    assert client.queries == [{"IndexName": "cliente-id-index", "ScanIndexForward": False}]


def test_get_by_cliente_skips_malformed_items():
    client = FakeDynamo()
    repo = DynamoTransacaoRepository(client, TABLE)
    good = make_transacao()
    repo.save(good)
    client.items["bad"] = {
        "id": {"S": "bad"},
        "cliente_id": {"S": "c-1"},
        "timestamp": {"S": "2000-01-01T00:00:00Z"},
        "ttl": {"S": "never"},
    }
    assert [t.id for t in repo.get_by_cliente_id("c-1", 10)] == [good.id]


def test_get_by_cliente_wraps_client_failure():
    repo = DynamoTransacaoRepository(BrokenClient(), TABLE)
    with pytest.raises(RuntimeError, match="erro ao buscar transações do cliente c-1"):
        repo.get_by_cliente_id("c-1", 5)


def test_unknown_status_is_kept_as_text():
    client = FakeDynamo()
    client.items["t-1"] = {"id": {"S": "t-1"}, "status": {"S": "ESTORNADA"}}
    assert DynamoTransacaoRepository(client, TABLE).get_by_id("t-1").status == "ESTORNADA"


def test_transacao_item_defaults_are_zero_values():
    item = TransacaoItem()
    assert (item.id, item.valor, item.status, item.ttl) == ("", 0.0, "", 0)