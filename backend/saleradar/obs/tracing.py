"""OpenTelemetry wiring plus spans around listing fan-out work.

Everything degrades to no-ops when the ``tracing`` extra is not installed or
tracing is disabled, so callers can wrap work in :func:`span` unconditionally.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from fastapi import FastAPI

from saleradar.settings import Settings, settings

try:  # pragma: no cover - installed through the "tracing" extra
	from opentelemetry import trace
	from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
	from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
	from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
	from opentelemetry.instrumentation.redis import RedisInstrumentor
	from opentelemetry.sdk.resources import Resource
	from opentelemetry.sdk.trace import TracerProvider
	from opentelemetry.sdk.trace.export import BatchSpanProcessor
except ImportError:  # pragma: no cover - tracing extra not installed
	trace = None  # type: ignore

LOGGER = logging.getLogger(__name__)
TRACER_NAME = "saleradar"

_provider: Optional[Any] = None


def _install_provider(cfg: Settings) -> Any:
	"""Process-wide provider; outbound HTTP (push, geocoding) and Redis are instrumented once."""
	global _provider
	if _provider is not None:
		return _provider
	resource = Resource.create(
		{
			"service.name": cfg.service_name,
			"service.version": cfg.git_commit,
			"deployment.environment": cfg.environment,
		}
	)
	provider = TracerProvider(resource=resource)
	provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=cfg.otel_exporter_otlp_endpoint, insecure=True)))
	trace.set_tracer_provider(provider)
	HTTPXClientInstrumentor().instrument()
	RedisInstrumentor().instrument()
	_provider = provider
	LOGGER.info("tracing.enabled", extra={"endpoint": cfg.otel_exporter_otlp_endpoint})
	return provider


def init_tracing(app: FastAPI, cfg: Settings = settings) -> Optional[Any]:
	if not cfg.obs_tracing_enabled:
		return None
	if trace is None:
		LOGGER.warning("tracing.unavailable", extra={"reason": "opentelemetry_missing"})
		return None
	if not cfg.otel_exporter_otlp_endpoint:
		LOGGER.warning("tracing.unavailable", extra={"reason": "endpoint_missing"})
		return None
	provider = _install_provider(cfg)
	FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
	return provider


def active() -> bool:
	return _provider is not None


@contextmanager
def span(name: str, **attributes: Any) -> Iterator[None]:
	"""Run the block inside span ``name``; attribute keys get a ``saleradar.`` prefix."""
	if _provider is None or trace is None:
		yield
		return
	tracer = trace.get_tracer(TRACER_NAME)
	with tracer.start_as_current_span(name) as current:
		for key, value in attributes.items():
			if value is not None:
				current.set_attribute(f"saleradar.{key}", value)
		yield


def shutdown_tracing() -> None:
	global _provider
	if _provider is None:
		return
	_provider.shutdown()
	_provider = None


__all__ = ["active", "init_tracing", "shutdown_tracing", "span"]
