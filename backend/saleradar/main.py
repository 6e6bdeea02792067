"""FastAPI application factory.

Run with ``uvicorn saleradar.main:create_asgi_app --factory``; nothing is
constructed until a factory is called.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from saleradar.api import listings, ops, registrations
from saleradar.api.errors import install_error_handlers
from saleradar.domain.feed.sockets import FeedNamespace
from saleradar.obs import init as obs_init
from saleradar.obs import tracing
from saleradar.services import Services
from saleradar.settings import Settings, settings


def _allowed_origins(cfg: Settings) -> List[str]:
	allow_origins = list(cfg.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000", "http://localhost:5173"] if cfg.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True.
	return [origin for origin in allow_origins if origin != "*"]


def create_app(cfg: Settings = settings, *, services: Services | None = None) -> FastAPI:
	services = services or Services.from_settings(cfg)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		await services.start()
		try:
			yield
		finally:
			await services.aclose()
			tracing.shutdown_tracing()

	app = FastAPI(title="SaleRadar", lifespan=lifespan)
	app.state.services = services
	install_error_handlers(app)

	allow_origins = _allowed_origins(cfg)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
	sio.register_namespace(FeedNamespace(change_feed=services.change_feed, geocoder=services.geocoder))
	app.state.sio = sio
	obs_init(app, cfg)

	app.include_router(listings.router)
	app.include_router(registrations.router)
	app.include_router(ops.router)
	return app


def create_asgi_app(cfg: Settings = settings) -> socketio.ASGIApp:
	"""HTTP app with the Socket.IO server mounted in front of it."""
	app = create_app(cfg)
	return socketio.ASGIApp(app.state.sio, other_asgi_app=app)
