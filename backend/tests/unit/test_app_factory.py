import socketio

import saleradar.main as main
from saleradar.main import create_app, create_asgi_app
from saleradar.settings import settings


def test_importing_main_builds_nothing():
	assert not hasattr(main, "app")
	assert not hasattr(main, "services")


def test_each_app_owns_its_services():
	first = create_app(settings)
	second = create_app(settings)

	assert first.state.services is not second.state.services
	assert first.state.sio.namespace_handlers["/feed"].change_feed is first.state.services.change_feed
	paths = {route.path for route in first.routes}
	assert {"/listings/mine", "/listings/nearby", "/registrations", "/health/ready"} <= paths


def test_asgi_app_wraps_http_app_with_socketio():
	asgi = create_asgi_app(settings)
	assert isinstance(asgi, socketio.ASGIApp)
	assert "/feed" in asgi.other_asgi_app.state.sio.namespace_handlers
