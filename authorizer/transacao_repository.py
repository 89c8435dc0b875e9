"""DynamoDB-backed store of transactions."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Mapping

from authorizer.attributes import (
    is_conditional_check_failed,
    marshal_item,
    marshal_value,
    unmarshal_item,
)
from authorizer.domain import Status, Transacao
from authorizer.ports import TransacaoRepository

TTL_SECONDS = 90 * 24 * 60 * 60
CLIENTE_INDEX = "cliente-id-index"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_KINDS = {"str": str, "int": int, "float": float}


@dataclass
class TransacaoItem:
    """A transaction as stored in the table."""

    id: str = ""
    cliente_id: str = ""
    valor: float = 0.0
    status: str = ""
    timestamp: str = ""
    correlation_id: str = ""
    ttl: int = 0


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _coerce(name: str, raw: Any, kind: type) -> Any:
    if isinstance(raw, bool):
        raise TypeError(f"campo {name}: tipo inesperado {type(raw).__name__}")
    if kind is float and isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, kind):
        return raw
    raise TypeError(f"campo {name}: tipo inesperado {type(raw).__name__}")


def _decode_transacao_item(attributes: Mapping[str, Any]) -> TransacaoItem:
    data = unmarshal_item(attributes)
    values = {
        f.name: _coerce(f.name, data[f.name], _KINDS[f.type])
        for f in fields(TransacaoItem)
        if data.get(f.name) is not None
    }
    return TransacaoItem(**values)


def _status(value: str) -> Status | str:
    try:
        return Status(value)
    except ValueError:
        return value


def _item_to_transacao(item: TransacaoItem) -> Transacao:
    return Transacao(
        id=item.id,
        cliente_id=item.cliente_id,
        valor=item.valor,
        status=_status(item.status),
        correlation_id=item.correlation_id,
    )


class DynamoTransacaoRepository(TransacaoRepository):
    """Transactions kept in a DynamoDB table keyed by ``id``.

    ``client`` offers the low-level operations ``put_item``, ``get_item`` and
    ``query`` with DynamoDB's keyword arguments and attribute-value maps. Queries
    by client use a secondary index on ``cliente_id``.
    """

    def __init__(self, client: Any, table_name: str) -> None:
        self.client = client
        self.table_name = table_name

    def save(self, transacao: Transacao) -> None:
        """Store a transaction with a 90-day expiry, never overwriting one."""
        moment = transacao.timestamp if transacao.timestamp is not None else _ZERO_TIME
        item = TransacaoItem(
            id=transacao.id,
            cliente_id=transacao.cliente_id,
            valor=transacao.valor,
            status=str(transacao.status),
            timestamp=_format_timestamp(moment),
            correlation_id=transacao.correlation_id,
            ttl=math.floor(moment.timestamp()) + TTL_SECONDS,
        )
        try:
            attributes = marshal_item(item)
        except (ValueError, TypeError) as err:
            raise RuntimeError(f"erro ao serializar transação: {err}") from err

        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=attributes,
                ConditionExpression="attribute_not_exists(id)",
            )
        except Exception as err:
            if is_conditional_check_failed(err):
                raise RuntimeError(f"transação {transacao.id} já existe") from err
            raise RuntimeError(f"erro ao salvar transação: {err}") from err

    def get_by_id(self, transacao_id: str) -> Transacao:
        """Return the transaction, read consistently; LookupError if it is absent."""
        try:
            result = self.client.get_item(
                TableName=self.table_name,
                Key={"id": marshal_value(transacao_id)},
                ConsistentRead=True,
            )
        except Exception as err:
            raise RuntimeError(f"erro ao buscar transação {transacao_id}: {err}") from err

        attributes = (result or {}).get("Item")
        if attributes is None:
            raise LookupError(f"transação {transacao_id} não encontrada")

        try:
            item = _decode_transacao_item(attributes)
        except (ValueError, TypeError) as err:
            raise RuntimeError(f"erro ao deserializar transação: {err}") from err
        return _item_to_transacao(item)

    def get_by_cliente_id(self, cliente_id: str, limit: int) -> list[Transacao]:
        """Return up to ``limit`` of the client's transactions, newest first.

        Items that cannot be decoded are skipped.
        """
        try:
            result = self.client.query(
                TableName=self.table_name,
                IndexName=CLIENTE_INDEX,
                KeyConditionExpression="cliente_id = :cliente_id",
                ExpressionAttributeValues={":cliente_id": marshal_value(cliente_id)},
                Limit=int(limit),
                ScanIndexForward=False,
            )
        except Exception as err:
            raise RuntimeError(
                f"erro ao buscar transações do cliente {cliente_id}: {err}"
            ) from err

        transacoes = []
        for attributes in (result or {}).get("Items", []):
            try:
                item = _decode_transacao_item(attributes)
            except (ValueError, TypeError):
                continue
            transacoes.append(_item_to_transacao(item))
        return transacoes