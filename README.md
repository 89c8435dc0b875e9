# authorizer

A credit transaction authorizer. It takes a transaction request for a
client, validates it, debits the client's available limit in a single
conditional update, records the transaction for auditing and publishes an
approval or rejection event. Each step is logged as structured JSON,
traced with spans and counted in metrics.

The package has no third-party runtime dependencies. Install the `test`
extra to run the pytest suite.

## How a transaction flows

1. `Transacao.new(cliente_id, valor, correlation_id)` (in
   `authorizer.domain`) creates a `PENDENTE` transaction with a fresh UUID
   and the current UTC timestamp.
2. `Transacao.valida()` raises `ValorNegativoError`, `ValorZeroError` or
   `ClienteInvalidoError` when the amount or the client id is unacceptable.
3. `TransacaoService.autorizar_transacao(transacao)` (in
   `authorizer.service`) validates the transaction, converts the amount to
   cents and calls the limit repository's `debitar_limite_atomica`.
   - On success the transaction is marked `APROVADA` and saved. An approval
     event is then published on a background thread.
   - On failure it is marked `REJEITADA` and still saved for auditing. A
     failed save is logged, not raised. A rejection event is published in
     the background, and the original error is raised again.
4. `TransacaoService.wait_for_events()` blocks until every background
   publication started so far has finished.

`Transacao.to_evento()` builds a `TransacaoEvento`. Its `evento` is
`TipoEvento.TRANSACAO_APROVADA`, `TRANSACAO_REJEITADA` or, for any other
status, `TRANSACAO_PROCESSADA`.

## Errors

Every domain error derives from `DomainError`. The handler maps errors to
responses as follows:

| Error                         | HTTP status | error code           |
|-------------------------------|-------------|----------------------|
| `LimiteInsuficienteError`     | 422         | `insufficient_limit` |
| `ClienteNaoEncontradoError`   | 404         | `client_not_found`   |
| `ValorNegativoError`          | 400         | `invalid_amount`     |
| `ValorZeroError`              | 400         | `invalid_amount`     |
| `ClienteInvalidoError`        | 400         | `invalid_client`     |
| anything else                 | 500         | `internal_error`     |

`TransacaoDuplicadaError` is defined but nothing in the package raises it.

## Request handler

`authorizer.handler.LambdaHandler.handle_request(request)` takes an API
Gateway proxy request as a mapping. It reads these keys:

- `httpMethod` and `path`
- `headers` and `body`
- `requestContext.requestId`
- `requestContext.identity.sourceIp`

It returns a dictionary with `statusCode`, `headers` and `body`.

Routes:

- `POST /transacoes` with a JSON body such as
  `{"cliente_id": "c-1", "valor": 99.9}`. A body that is not valid JSON, or
  whose fields have the wrong types, gets a 400 response with the error code
  `invalid_json`. On success the response is 200 with `transacao_id`,
  `status`, `cliente_id`, `valor`, `timestamp` and `correlation_id`. It also
  carries the `X-Correlation-ID` and `X-Response-Time` headers.
- `GET /health` answers 200 with `status: healthy`, the current
  `timestamp`, `version: 1.0.0` and `service: transaction-authorizer`.
- Any other route answers 404 with the error code `endpoint_not_found`.

Error bodies hold `error`, `message`, `correlation_id` and `timestamp`.

The correlation id is chosen in this order:

1. the `X-Correlation-ID` request header;
2. the API Gateway request id;
3. a new UUID.

It is made current for the request with `with_correlation_id`, so every log
line carries it.

## Storage

`DynamoLimiteRepository` and `DynamoTransacaoRepository` work over a client
object that offers the low-level DynamoDB calls `get_item`, `update_item`,
`put_item` and `query`. These take DynamoDB keyword arguments and
attribute-value maps. `authorizer.attributes` converts between Python values
and those maps with `marshal_value`, `unmarshal_value`, `marshal_item` and
`unmarshal_item`.

A failed condition check is recognised by `is_conditional_check_failed`.
It matches an exception whose class, or a base class, is named
`ConditionalCheckFailedException`, or whose `response["Error"]["Code"]` has
that value. It also follows chained exceptions.

`DynamoLimiteRepository` behaves as follows:

- `debitar_limite_atomica(cliente_id, valor)` debits `valor` cents only if
  the client exists and has enough limit.
- When that condition fails, it re-reads the client to raise either
  `ClienteNaoEncontradoError` or `LimiteInsuficienteError`.
- `create_cliente` refuses to overwrite an existing client.
- `get_cliente` does not read `created_at` or `updated_at` back.

`DynamoTransacaoRepository` behaves as follows:

- `save` stores a transaction with a `ttl` 90 days after its timestamp and
  never overwrites an existing id.
- `get_by_id` raises `LookupError` when the transaction is absent.
- `get_by_cliente_id(cliente_id, limit)` queries the `cliente-id-index`
  secondary index, newest first, and skips items it cannot decode.
- Timestamps are not read back.

Other failures from either repository are raised as `RuntimeError` chained to
the client's exception.

## Wiring it up

`authorizer.app.build_handler(client, environ=None)` assembles a complete
`LambdaHandler` around a DynamoDB-style client. It uses these components:

- `DynamoLimiteRepository`
- `DynamoTransacaoRepository`
- `SimpleEventPublisher`
- `SimpleMetricsCollector`
- `SimpleTracer("transaction-authorizer")`
- `StructuredLogger`
- `TransacaoService`

Settings are read with `get_env_or_default` from `environ`, or from
`os.environ` when `environ` is not given. An empty value counts as unset.

| Variable                | Default                                         |
|-------------------------|-------------------------------------------------|
| `CLIENTES_TABLE_NAME`   | `clientes`                                      |
| `TRANSACOES_TABLE_NAME` | `transacoes`                                    |
| `SNS_TOPIC_ARN`         | `arn:aws:sns:us-east-1:123456789012:transacoes` |

```python
from authorizer.app import build_handler

handler = build_handler(client, {"CLIENTES_TABLE_NAME": "clientes"})
response = handler.handle_request({
    "httpMethod": "POST",
    "path": "/transacoes",
    "headers": {"X-Correlation-ID": "req-1"},
    "body": '{"cliente_id": "c-1", "valor": 10.5}',
})
print(response["statusCode"], response["body"])
```

## Observability

- `StructuredLogger(level=Level.DEBUG, stream=None)` writes one JSON object
  per line to the stream, or to stdout when no stream is given. Each record
  holds `time`, `level`, `source`, `msg`, the given fields and the current
  `correlation_id`, if there is one. `current_correlation_id()` and the
  context manager `with_correlation_id(...)` read and set that id.
- `SimpleTracer` returns `SimpleSpan` objects. Spans started within a span
  share its trace id, which is held in a context variable.
  - `add_tag` and `add_event` record data on a span.
  - `finish_span` prints a one-line `TRACE [...]` summary to stdout.
  - `extract_trace_id()` returns the current trace id.
  - The context manager `inject_correlation_id()` uses the current trace id
    as the correlation id.
- `SimpleMetricsCollector` writes each metric as a timestamped `METRIC:`
  line to stderr or to a given stream. `SimpleEventPublisher` writes each
  event as an `EVENT:` line.
- `authorizer.metrics.PrometheusCollector` keeps these metrics in a
  `Registry`:
  - `transactions_total`
  - `transaction_duration_seconds`, a histogram with
    `exponential_buckets(0.001, 2, 15)`
  - `business_metrics`
  - `errors_total`

  `Registry.render()` produces the Prometheus text exposition format.
  Without an explicit registry the collector uses the module's shared
  `DEFAULT_REGISTRY`, so a second collector on that registry raises
  `ValueError`.

## What it does not do

- No DynamoDB client is included; you supply one.
- Nothing starts a Lambda runtime or an HTTP server. `handle_request` is
  called directly.
- There is no command-line program.
- `SimpleEventPublisher` only writes log lines; it does not send anything to
  the configured topic.
- Metrics are not served over HTTP; `Registry.render()` only returns the
  text.
- Spans are printed, not exported to a tracing backend.