"""The transaction authorization service."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from authorizer.domain import LimiteInsuficienteError, Status, Transacao
from authorizer.ports import (
    DistributedTracer,
    EventPublisher,
    LimiteRepository,
    Logger,
    MetricsCollector,
    TransacaoRepository,
)


class TransacaoService:
    """Validates transactions, debits client limits and publishes the outcome."""

    def __init__(
        self,
        limite_repository: LimiteRepository,
        transacao_repository: TransacaoRepository,
        event_publisher: EventPublisher,
        metrics_collector: MetricsCollector,
        tracer: DistributedTracer,
        logger: Logger,
    ) -> None:
        self._limites = limite_repository
        self._transacoes = transacao_repository
        self._publisher = event_publisher
        self._metrics = metrics_collector
        self._tracer = tracer
        self._logger = logger
        self._pending: list[threading.Thread] = []
        self._pending_lock = threading.Lock()

    def autorizar_transacao(self, transacao: Transacao) -> None:
        """Authorize the transaction, raising the reason if it is rejected."""
        start = time.perf_counter()
        span = self._tracer.start_span("TransacaoService.AutorizarTransacao")
        try:
            self._tracer.add_tag(span, "cliente_id", transacao.cliente_id)
            self._tracer.add_tag(span, "valor", transacao.valor)
            self._tracer.add_tag(span, "correlation_id", transacao.correlation_id)

            self._logger.info(
                "iniciando autorização de transação",
                {
                    "transacao_id": transacao.id,
                    "cliente_id": transacao.cliente_id,
                    "valor": transacao.valor,
                    "correlation_id": transacao.correlation_id,
                },
            )

            try:
                self._validar_transacao(transacao)
                self._processar_limite(transacao)
            except Exception as motivo:
                self._rejeitar_transacao(transacao, motivo)
                raise

            self._aprovar_transacao(transacao)
        finally:
            self._metrics.record_transaction_latency(time.perf_counter() - start)
            self._tracer.finish_span(span, None)

    def wait_for_events(self) -> None:
        """Block until every event publication started so far has finished."""
        while True:
            with self._pending_lock:
                threads, self._pending = self._pending, []
            if not threads:
                return
            for thread in threads:
                thread.join()

    @contextmanager
    def _span(self, name: str) -> Iterator[Any]:
        span = self._tracer.start_span(name)
        try:
            yield span
        finally:
            self._tracer.finish_span(span, None)

    def _run_async(self, target: Callable[..., None], *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        with self._pending_lock:
            self._pending.append(thread)
        thread.start()

    def _validar_transacao(self, transacao: Transacao) -> None:
        with self._span("TransacaoService.validarTransacao"):
            try:
                transacao.valida()
            except Exception as err:
                self._logger.warn(
                    "validação de transação falhou",
                    {"transacao_id": transacao.id, "erro": str(err)},
                )
                self._metrics.increment_error_counter("validation_error")
                raise

    def _processar_limite(self, transacao: Transacao) -> None:
        with self._span("TransacaoService.processarLimite"):
            valor_centavos = int(transacao.valor * 100)
            try:
                self._limites.debitar_limite_atomica(transacao.cliente_id, valor_centavos)
            except LimiteInsuficienteError:
                self._logger.warn(
                    "limite insuficiente",
                    {
                        "transacao_id": transacao.id,
                        "cliente_id": transacao.cliente_id,
                        "valor": transacao.valor,
                    },
                )
                self._metrics.increment_error_counter("insufficient_limit")
                raise
            except Exception as err:
                self._logger.error(
                    "erro ao debitar limite",
                    err,
                    {"transacao_id": transacao.id, "cliente_id": transacao.cliente_id},
                )
                self._metrics.increment_error_counter("limit_operation_error")
                raise

    def _aprovar_transacao(self, transacao: Transacao) -> None:
        with self._span("TransacaoService.aprovarTransacao"):
            transacao.aprovar()

            try:
                self._transacoes.save(transacao)
            except Exception as err:
                self._logger.error(
                    "erro ao salvar transação", err, {"transacao_id": transacao.id}
                )
                self._metrics.increment_error_counter("transaction_save_error")
                raise

            self._run_async(self._publicar_evento, transacao)

            self._logger.info(
                "transação aprovada com sucesso",
                {
                    "transacao_id": transacao.id,
                    "cliente_id": transacao.cliente_id,
                    "valor": transacao.valor,
                },
            )
            self._metrics.increment_transaction_counter(Status.APROVADA.value)
            self._metrics.record_business_metric(
                "transaction_value",
                transacao.valor,
                {"status": Status.APROVADA.value, "cliente_id": transacao.cliente_id},
            )

    def _rejeitar_transacao(self, transacao: Transacao, motivo: BaseException) -> None:
        with self._span("TransacaoService.rejeitarTransacao"):
            transacao.rejeitar()

            try:
                self._transacoes.save(transacao)
            except Exception as err:
                self._logger.error(
                    "erro ao salvar transação rejeitada", err, {"transacao_id": transacao.id}
                )

            self._run_async(self._publicar_evento_rejeicao, transacao, motivo)

            self._logger.info(
                "transação rejeitada",
                {
                    "transacao_id": transacao.id,
                    "cliente_id": transacao.cliente_id,
                    "motivo": str(motivo),
                },
            )
            self._metrics.increment_transaction_counter(Status.REJEITADA.value)

    def _publicar_evento(self, transacao: Transacao) -> None:
        with self._span("TransacaoService.publicarEvento"):
            evento = transacao.to_evento()
            try:
                self._publisher.publish_transacao_aprovada(evento)
            except Exception as err:
                self._logger.error(
                    "falha ao publicar evento de transação aprovada",
                    err,
                    {"transacao_id": transacao.id, "evento": evento.evento.value},
                )
                self._metrics.increment_error_counter("event_publish_error")
            else:
                self._logger.info(
                    "evento de transação publicado",
                    {"transacao_id": transacao.id, "evento": evento.evento.value},
                )

    def _publicar_evento_rejeicao(self, transacao: Transacao, motivo: BaseException) -> None:
        with self._span("TransacaoService.publicarEventoRejeicao"):
            evento = transacao.to_evento()
            try:
                self._publisher.publish_transacao_rejeitada(evento)
            except Exception as err:
                self._logger.error(
                    "falha ao publicar evento de transação rejeitada",
                    err,
                    {"transacao_id": transacao.id, "motivo": str(motivo)},
                )
                self._metrics.increment_error_counter("event_publish_error")