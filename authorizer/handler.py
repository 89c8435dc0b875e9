"""API Gateway proxy handler for transaction authorization."""

from __future__ import annotations

import json
import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Mapping

from authorizer.domain import (
    ClienteInvalidoError,
    ClienteNaoEncontradoError,
    LimiteInsuficienteError,
    Transacao,
    ValorNegativoError,
    ValorZeroError,
)
from authorizer.ports import DistributedTracer, Logger, MetricsCollector
from authorizer.service import TransacaoService
from authorizer.structured_logger import current_correlation_id, with_correlation_id

_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _dumps(obj: Any, sort_keys: bool = False) -> str:
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"), sort_keys=sort_keys)
    for char, escaped in _HTML_ESCAPES:
        text = text.replace(char, escaped)
    return text


def _json_number(value: float) -> int | float:
    if math.isfinite(value) and float(value).is_integer() and abs(value) < 1e21:
        return int(value)
    return value


def _format_offset(moment: datetime) -> str:
    offset = moment.utcoffset()
    if not offset:
        return "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    hours, minutes = divmod(abs(total) // 60, 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def _rfc3339(moment: datetime | None, *, fraction: bool) -> str:
    if moment is None:
        return "0001-01-01T00:00:00Z"
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if fraction:
        digits = f"{moment.microsecond:06d}".rstrip("0")
        if digits:
            text += "." + digits
    return text + _format_offset(moment)


def _now_rfc3339() -> str:
    return _rfc3339(datetime.now().astimezone(), fraction=False)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _nested(data: Any, *keys: str) -> str:
    for key in keys:
        if not isinstance(data, Mapping):
            return ""
        data = data.get(key)
    return data if isinstance(data, str) else ""


@dataclass
class TransacaoRequest:
    """Payload of a transaction request."""

    cliente_id: str = ""
    valor: float = 0.0

    @classmethod
    def from_json(cls, body: str) -> TransacaoRequest:
        """Parse a request body; raise ValueError if it is not a valid payload."""
        data = json.loads(body, parse_constant=_reject_constant)
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"cannot decode {type(data).__name__} into a request")
        cliente_id, valor = "", 0.0
        for key, value in data.items():
            name = key.lower()
            if value is None:
                continue
            if name == "cliente_id":
                if not isinstance(value, str):
                    raise ValueError("cliente_id must be a string")
                cliente_id = value
            elif name == "valor":
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError("valor must be a number")
                try:
                    number = float(value)
                except OverflowError as err:
                    raise ValueError("valor is out of range") from err
                if not math.isfinite(number):
                    raise ValueError("valor is out of range")
                valor = number
        return cls(cliente_id=cliente_id, valor=valor)


@dataclass
class TransacaoResponse:
    """Body of a successful authorization."""

    transacao_id: str
    status: str
    cliente_id: str
    valor: float
    timestamp: datetime | None
    correlation_id: str

    def to_json(self) -> str:
        return _dumps(
            {
                "transacao_id": self.transacao_id,
                "status": str(self.status),
                "cliente_id": self.cliente_id,
                "valor": _json_number(self.valor),
                "timestamp": _rfc3339(self.timestamp, fraction=True),
                "correlation_id": self.correlation_id,
            }
        )


@dataclass
class ErrorResponse:
    """Body of an error answer."""

    error: str
    message: str
    correlation_id: str
    timestamp: str

    def to_json(self) -> str:
        return _dumps(
            {
                "error": self.error,
                "message": self.message,
                "correlation_id": self.correlation_id,
                "timestamp": self.timestamp,
            }
        )


def _response(status_code: int, headers: dict[str, str], body: str) -> dict[str, Any]:
    return {"statusCode": int(status_code), "headers": headers, "body": body}


class LambdaHandler:
    """Routes API Gateway proxy requests to the authorization service."""

    def __init__(
        self,
        transacao_service: TransacaoService,
        logger: Logger,
        tracer: DistributedTracer,
        metrics_collector: MetricsCollector,
    ) -> None:
        self.transacao_service = transacao_service
        self._logger = logger
        self._tracer = tracer
        self._metrics = metrics_collector

    def handle_request(self, request: Mapping[str, Any]) -> dict[str, Any]:
        """Answer one proxy request with a proxy response dictionary."""
        start = time.perf_counter()
        method = _nested(request, "httpMethod")
        path = _nested(request, "path")
        correlation_id = self._extract_or_generate_correlation_id(request)

        with with_correlation_id(correlation_id):
            span = self._tracer.start_span("lambda.handle_request")
            try:
                self._tracer.add_tag(span, "http.method", method)
                self._tracer.add_tag(span, "http.path", path)
                self._tracer.add_tag(span, "correlation_id", correlation_id)

                self._logger.info(
                    "requisição recebida",
                    {
                        "method": method,
                        "path": path,
                        "source_ip": _nested(request, "requestContext", "identity", "sourceIp"),
                    },
                )

                if method == "POST" and path == "/transacoes":
                    response = self._handle_post_transacoes(request)
                elif method == "GET" and path == "/health":
                    response = self._handle_health_check()
                else:
                    response = self._error_response(
                        HTTPStatus.NOT_FOUND,
                        "endpoint_not_found",
                        "Endpoint não encontrado",
                        correlation_id,
                    )

                duration = time.perf_counter() - start
                self._metrics.record_transaction_latency(duration)
                self._logger.info(
                    "resposta enviada",
                    {"status_code": response["statusCode"], "duration_ms": duration * 1000},
                )
                return response
            finally:
                self._tracer.finish_span(span, None)

    def _handle_post_transacoes(self, request: Mapping[str, Any]) -> dict[str, Any]:
        span = self._tracer.start_span("handler.post_transacoes")
        try:
            correlation_id = current_correlation_id()
            body = request.get("body") or ""

            try:
                payload = TransacaoRequest.from_json(body)
            except ValueError as err:
                self._logger.warn(
                    "erro ao fazer parse do JSON", {"error": str(err), "body": body}
                )
                self._metrics.increment_error_counter("json_parse_error")
                return self._error_response(
                    HTTPStatus.BAD_REQUEST, "invalid_json", "JSON inválido", correlation_id
                )

            self._tracer.add_tag(span, "cliente_id", payload.cliente_id)
            self._tracer.add_tag(span, "valor", payload.valor)

            transacao = Transacao.new(payload.cliente_id, payload.valor, correlation_id)

            try:
                self.transacao_service.autorizar_transacao(transacao)
            except Exception as err:
                status_code, error_code, message = self._categorize_error(err)
                self._logger.warn(
                    "transação rejeitada",
                    {"transacao_id": transacao.id, "error": str(err), "error_code": error_code},
                )
                return self._error_response(status_code, error_code, message, correlation_id)

            body_text = TransacaoResponse(
                transacao_id=transacao.id,
                status=str(transacao.status),
                cliente_id=transacao.cliente_id,
                valor=transacao.valor,
                timestamp=transacao.timestamp,
                correlation_id=correlation_id,
            ).to_json()

            elapsed_ms = 0.0
            if transacao.timestamp is not None:
                elapsed = datetime.now(timezone.utc) - transacao.timestamp
                elapsed_ms = elapsed.total_seconds() * 1000

            return _response(
                HTTPStatus.OK,
                {
                    "Content-Type": "application/json",
                    "X-Correlation-ID": correlation_id,
                    "X-Response-Time": f"{elapsed_ms:.3f}ms",
                },
                body_text,
            )
        finally:
            self._tracer.finish_span(span, None)

    def _handle_health_check(self) -> dict[str, Any]:
        body = _dumps(
            {
                "status": "healthy",
                "timestamp": _now_rfc3339(),
                "version": "1.0.0",
                "service": "transaction-authorizer",
            },
            sort_keys=True,
        )
        return _response(HTTPStatus.OK, {"Content-Type": "application/json"}, body)

    @staticmethod
    def _categorize_error(err: BaseException) -> tuple[int, str, str]:
        if isinstance(err, LimiteInsuficienteError):
            return HTTPStatus.UNPROCESSABLE_ENTITY, "insufficient_limit", "Limite insuficiente"
        if isinstance(err, ClienteNaoEncontradoError):
            return HTTPStatus.NOT_FOUND, "client_not_found", "Cliente não encontrado"
        if isinstance(err, (ValorNegativoError, ValorZeroError)):
            return HTTPStatus.BAD_REQUEST, "invalid_amount", "Valor inválido"
        if isinstance(err, ClienteInvalidoError):
            return HTTPStatus.BAD_REQUEST, "invalid_client", "Cliente inválido"
        return HTTPStatus.INTERNAL_SERVER_ERROR, "internal_error", "Erro interno do servidor"

    @staticmethod
    def _error_response(
        status_code: int, error_code: str, message: str, correlation_id: str
    ) -> dict[str, Any]:
        body = ErrorResponse(
            error=error_code,
            message=message,
            correlation_id=correlation_id,
            timestamp=_now_rfc3339(),
        ).to_json()
        return _response(
            status_code,
            {"Content-Type": "application/json", "X-Correlation-ID": correlation_id},
            body,
        )

    @staticmethod
    def _extract_or_generate_correlation_id(request: Mapping[str, Any]) -> str:
        header = _nested(request, "headers", "X-Correlation-ID")
        if header:
            return header
        request_id = _nested(request, "requestContext", "requestId")
        if request_id:
            return request_id
        return str(uuid.uuid4())