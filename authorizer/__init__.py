"""Credit transaction authorizer: domain model, service, request handler, storage and observability."""

__version__ = "1.0.0"