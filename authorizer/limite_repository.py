"""DynamoDB-backed store of clients' credit limits."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Mapping

from authorizer.attributes import (
    current_time_millis,
    is_conditional_check_failed,
    marshal_item,
    marshal_value,
    unmarshal_item,
)
from authorizer.domain import (
    Cliente,
    ClienteNaoEncontradoError,
    LimiteInsuficienteError,
)
from authorizer.ports import LimiteRepository

_ZERO_TIME = "0001-01-01T00:00:00Z"
_KINDS = {"str": str, "int": int, "float": float}


@dataclass
class ClienteItem:
    """A client as stored in the table."""

    id: str = ""
    nome: str = ""
    email: str = ""
    limite_credito: int = 0
    limite_atual: int = 0
    created_at: str = ""
    updated_at: str = ""


def _format_timestamp(moment: datetime | None) -> str:
    if moment is None:
        return _ZERO_TIME
    text = moment.astimezone().replace(microsecond=0).isoformat() if moment.tzinfo is None \
        else moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _coerce(name: str, raw: Any, kind: type) -> Any:
    if isinstance(raw, bool):
        raise TypeError(f"campo {name}: tipo inesperado {type(raw).__name__}")
    if kind is float and isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, kind):
        return raw
    raise TypeError(f"campo {name}: tipo inesperado {type(raw).__name__}")


def _decode_cliente_item(attributes: Mapping[str, Any]) -> ClienteItem:
    data = unmarshal_item(attributes)
    values = {
        f.name: _coerce(f.name, data[f.name], _KINDS[f.type])
        for f in fields(ClienteItem)
        if data.get(f.name) is not None
    }
    return ClienteItem(**values)


def _item_to_cliente(item: ClienteItem) -> Cliente:
    return Cliente(
        id=item.id,
        nome=item.nome,
        email=item.email,
        limite_credito=item.limite_credito,
        limite_atual=item.limite_atual,
    )


class DynamoLimiteRepository(LimiteRepository):
    """Client limits kept in a DynamoDB table keyed by ``id``.

    ``client`` offers the low-level operations ``get_item``, ``update_item`` and
    ``put_item`` with DynamoDB's keyword arguments and attribute-value maps.
    """

    def __init__(self, client: Any, table_name: str) -> None:
        self.client = client
        self.table_name = table_name

    def _key(self, cliente_id: str) -> dict[str, Any]:
        return {"id": marshal_value(cliente_id)}

    def get_cliente(self, cliente_id: str) -> Cliente:
        """Return the client, read consistently, or raise ClienteNaoEncontradoError."""
        try:
            result = self.client.get_item(
                TableName=self.table_name,
                Key=self._key(cliente_id),
                ConsistentRead=True,
            )
        except Exception as err:
            raise RuntimeError(f"erro ao buscar cliente {cliente_id}: {err}") from err

        attributes = (result or {}).get("Item")
        if attributes is None:
            raise ClienteNaoEncontradoError()

        try:
            item = _decode_cliente_item(attributes)
        except (ValueError, TypeError) as err:
            raise RuntimeError(f"erro ao deserializar cliente: {err}") from err
        return _item_to_cliente(item)

    def update_limite(self, cliente_id: str, novo_limite: int) -> None:
        """Set the client's current limit, failing if the client does not exist."""
        try:
            self.client.update_item(
                TableName=self.table_name,
                Key=self._key(cliente_id),
                UpdateExpression="SET limite_atual = :novo_limite, updated_at = :now",
                ExpressionAttributeValues={
                    ":novo_limite": {"N": str(int(novo_limite))},
                    ":now": {"S": str(current_time_millis())},
                },
                ConditionExpression="attribute_exists(id)",
            )
        except Exception as err:
            if is_conditional_check_failed(err):
                raise ClienteNaoEncontradoError() from err
            raise RuntimeError(
                f"erro ao atualizar limite do cliente {cliente_id}: {err}"
            ) from err

    def debitar_limite_atomica(self, cliente_id: str, valor: int) -> None:
        """Check the limit and debit ``valor`` cents in one conditional write."""
        try:
            self.client.update_item(
                TableName=self.table_name,
                Key=self._key(cliente_id),
                UpdateExpression="SET limite_atual = limite_atual - :valor, updated_at = :now",
                ExpressionAttributeValues={
                    ":valor": {"N": str(int(valor))},
                    ":now": {"S": str(current_time_millis())},
                    ":zero": {"N": "0"},
                },
                ConditionExpression=(
                    "attribute_exists(id) AND limite_atual >= :valor "
                    "AND (limite_atual - :valor) >= :zero"
                ),
                ReturnValues="UPDATED_NEW",
            )
        except Exception as err:
            if not is_conditional_check_failed(err):
                raise RuntimeError(
                    f"erro ao debitar limite do cliente {cliente_id}: {err}"
                ) from err
            self._explain_failed_debit(cliente_id, valor, err)

    def _explain_failed_debit(self, cliente_id: str, valor: int, err: Exception) -> None:
        try:
            cliente = self.get_cliente(cliente_id)
        except ClienteNaoEncontradoError as missing:
            raise ClienteNaoEncontradoError() from missing
        except Exception as lookup_err:
            # The cause cannot be verified; treat it as an insufficient limit.
            raise LimiteInsuficienteError() from lookup_err

        if cliente.limite_atual < valor:
            raise LimiteInsuficienteError() from err
        raise RuntimeError(
            f"operação atômica falhou para cliente {cliente_id}: {err}"
        ) from err

    def create_cliente(self, cliente: Cliente) -> None:
        """Store a new client, refusing to overwrite an existing one."""
        item = ClienteItem(
            id=cliente.id,
            nome=cliente.nome,
            email=cliente.email,
            limite_credito=cliente.limite_credito,
            limite_atual=cliente.limite_atual,
            created_at=_format_timestamp(cliente.created_at),
            updated_at=_format_timestamp(cliente.updated_at),
        )
        try:
            attributes = marshal_item(item)
        except (ValueError, TypeError) as err:
            raise RuntimeError(f"erro ao serializar cliente: {err}") from err

        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=attributes,
                ConditionExpression="attribute_not_exists(id)",
            )
        except Exception as err:
            if is_conditional_check_failed(err):
                raise RuntimeError(f"cliente {cliente.id} já existe") from err
            raise RuntimeError(f"erro ao criar cliente: {err}") from err