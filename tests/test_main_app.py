"""
Tests for clientsync/main.py - FastAPI app creation, middleware, lifespan, and CORS.
"""
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from clientsync.errors import StoreConnectionError
from clientsync.main import create_app, lifespan


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_settings(**overrides):
    """Build a mock Settings object."""
    defaults = {
        "app_env": "test",
        "app_base_url": "http://localhost:8080",
        "allowed_origins": "",
        "log_level": "WARNING",
        "sentry_dsn": "",
        "auto_sync_enabled": False,
        "sync_interval_minutes": 30,
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


def _make_mock_portal(available=True):
    portal = MagicMock()
    portal.clients.available = available
    portal.clients.connect = AsyncMock()
    portal.scheduler.restore = AsyncMock()
    portal.scheduler.start = AsyncMock()
    portal.scheduler.stop = AsyncMock()
    return portal


def _build_app(**overrides) -> FastAPI:
    with (
        patch("clientsync.main.get_settings", return_value=_make_mock_settings(**overrides)),
        patch("clientsync.main.configure_structured_logging"),
    ):
        return create_app()


# ---------------------------------------------------------------------------
# create_app
# ---------------------------------------------------------------------------


class TestCreateApp:
    def test_returns_fastapi_instance(self):
        assert isinstance(_build_app(), FastAPI)

    def test_app_metadata(self):
        app = _build_app()
        assert app.title == "IRIAS Client Portal"
        assert app.version == "1.0.0"

    def test_configures_structured_logging(self):
        with (
            patch("clientsync.main.get_settings", return_value=_make_mock_settings(log_level="DEBUG")),
            patch("clientsync.main.configure_structured_logging") as mock_log,
        ):
            create_app()

        mock_log.assert_called_once_with("DEBUG")

    def test_includes_api_routes(self):
        route_paths = [route.path for route in _build_app().routes]
        for path in ("/health", "/api/clients", "/api/sync/manual", "/api/update-source", "/api/reports"):
            assert path in route_paths


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class TestCorrelationIdMiddleware:
    def test_generates_correlation_id_when_missing(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.get("/health")
        assert len(response.headers["x-correlation-id"]) == 32

    def test_uses_existing_correlation_id(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.get("/health", headers={"X-Correlation-ID": "cid-from-dashboard"})
        assert response.headers["x-correlation-id"] == "cid-from-dashboard"


class TestCorsMiddleware:
    def test_allows_configured_origin(self):
        client = TestClient(
            _build_app(allowed_origins="https://portal.iriasironworks.com, http://localhost:5173"),
            raise_server_exceptions=False,
        )
        response = client.options(
            "/health",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
        )
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"

    def test_allows_user_email_header(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.options(
            "/api/clients",
            headers={
                "Origin": "http://localhost:8080",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "X-User-Email",
            },
        )
        assert response.status_code == 200

    def test_unknown_origin_not_echoed(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.options(
            "/health",
            headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "GET"},
        )
        assert response.headers.get("access-control-allow-origin") != "https://evil.example"


# ---------------------------------------------------------------------------
# lifespan
# ---------------------------------------------------------------------------


class TestLifespan:
    async def _run(self, settings, portal):
        app = MagicMock()
        with (
            patch("clientsync.main.get_settings", return_value=settings),
            patch("clientsync.main.build_portal", return_value=portal),
            patch("clientsync.main.get_session_factory"),
            patch("clientsync.main.dispose_engine", new_callable=AsyncMock) as dispose,
            patch("clientsync.main.close_redis", new_callable=AsyncMock) as close,
        ):
            async with lifespan(app):
                assert app.state.portal is portal
            return dispose, close

    async def test_startup_restores_and_shutdown_cleans_up(self):
        portal = _make_mock_portal()
        dispose, close = await self._run(_make_mock_settings(), portal)

        portal.clients.connect.assert_awaited_once()
        portal.scheduler.restore.assert_awaited_once()
        portal.scheduler.start.assert_not_awaited()
        portal.scheduler.stop.assert_awaited_once()
        dispose.assert_awaited_once()
        close.assert_awaited_once()

    async def test_auto_sync_started_when_enabled(self):
        portal = _make_mock_portal()
        await self._run(_make_mock_settings(auto_sync_enabled=True, sync_interval_minutes=15), portal)
        portal.scheduler.start.assert_awaited_once_with(15)

    async def test_database_down_keeps_app_up(self):
        """Startup continues without restoring history or starting auto sync."""
        portal = _make_mock_portal(available=False)
        portal.clients.connect = AsyncMock(side_effect=StoreConnectionError("refused"))

        await self._run(_make_mock_settings(auto_sync_enabled=True), portal)

        portal.scheduler.restore.assert_not_awaited()
        portal.scheduler.start.assert_not_awaited()

    async def test_sentry_initialized_when_configured(self):
        portal = _make_mock_portal()
        with patch("sentry_sdk.init") as mock_init:
            await self._run(_make_mock_settings(sentry_dsn="https://key@sentry.io/1"), portal)
        mock_init.assert_called_once()
        assert mock_init.call_args.kwargs["environment"] == "test"
