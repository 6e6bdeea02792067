"""Observability bootstrap: JSON logging once per process, middleware and tracing per app."""

from __future__ import annotations

from fastapi import FastAPI

from saleradar.obs import logging as obs_logging
from saleradar.obs import middleware, tracing
from saleradar.settings import Settings, settings

_logging_configured = False


def init(app: FastAPI, cfg: Settings = settings) -> bool:
	"""Instrument ``app``; returns False when observability is off or already installed."""
	global _logging_configured
	if not cfg.obs_enabled or getattr(app.state, "obs_installed", False):
		return False
	if not _logging_configured:
		obs_logging.configure_logging()
		_logging_configured = True
	middleware.install(app)
	tracing.init_tracing(app, cfg)
	app.state.obs_installed = True
	return True


__all__ = ["init"]
