import pytest
import logging
import sys
import os

# Add backend to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


def test_imports():
    """Test that the application modules import together"""
    try:
        from server import app
        from routers import auth, usage, upc
        from config import settings
        from models import UserCreate
    except ImportError as e:
        pytest.fail(f"Import failed: {e}")


def test_config_defaults():
    from config import settings
    assert settings.database_url is not None  # PostgreSQL connection URL
    assert settings.jwt_algorithm == "HS256"
    assert settings.session_max_age_hours == 24
    assert settings.mobile_session_hours == 24


def test_service_config_is_a_snapshot():
    from config import settings, ServiceConfig
    config = settings.service_config()

    assert isinstance(config, ServiceConfig)
    assert config.endpoints_for("upc") == settings.upc_service_urls
    assert config.endpoints_for("unknown") == []
    with pytest.raises(Exception):
        config.api_token = "changed"


def test_router_prefixes():
    from routers import auth, usage, upc
    assert auth.router.prefix == "/auth"
    assert usage.router.prefix == "/usage"
    assert upc.router.prefix == "/upc"


def test_routes_mounted_on_both_prefixes():
    from server import app
    paths = app.openapi()["paths"]
    for path in ("/auth/session", "/auth/mobile-signin", "/usage/{feature}", "/upc/lookup"):
        assert f"/api/v1{path}" in paths
        assert f"/api{path}" in paths


class TestErrors:
    def test_error_body_shape(self):
        from utils.errors import UsageLimitExceededError
        error = UsageLimitExceededError("upc_scan", 10, 10, "free")

        assert error.status_code == 403
        assert error.detail["error"]["code"] == "USAGE_LIMIT_EXCEEDED"
        assert error.detail["error"]["details"]["current_tier"] == "free"

    def test_database_error_hides_cause(self):
        from utils.errors import DatabaseError, handle_database_error
        with pytest.raises(DatabaseError) as exc_info:
            handle_database_error(RuntimeError("password=hunter2"), "save usage tracking")

        assert "hunter2" not in str(exc_info.value.detail)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_unauthorized_is_generic(self):
        from utils.errors import UnauthorizedError
        error = UnauthorizedError()

        assert error.status_code == 401
        assert error.message == "Authentication required"


class TestDebugUtilities:
    def test_mask_email(self):
        from utils.debug import mask_email
        assert mask_email("jane@example.com") == "ja***@example.com"
        assert mask_email(None) == "***"
        assert mask_email("not-an-email") == "***"

    def test_auth_events_mask_email(self, caplog, monkeypatch):
        from utils.debug import log_auth_event
        monkeypatch.setattr(logging.getLogger("comfort.auth"), "propagate", True)
        with caplog.at_level(logging.INFO, logger="comfort.auth"):
            log_auth_event("SIGNIN", email="jane@example.com", source="web")

        assert "jane@example.com" not in caplog.text
        assert "ja***@example.com" in caplog.text

    def test_request_logging_follows_setting(self, caplog, monkeypatch):
        from config import settings
        from utils.debug import log_request
        monkeypatch.setattr(logging.getLogger("comfort.api"), "propagate", True)

        with caplog.at_level(logging.DEBUG, logger="comfort.api"):
            monkeypatch.setattr(settings, "debug_log_requests", False)
            log_request("GET", "/api/v1/usage/quiet")
            monkeypatch.setattr(settings, "debug_log_requests", True)
            log_request("GET", "/api/v1/usage/loud")

        assert "/api/v1/usage/quiet" not in caplog.text
        assert "/api/v1/usage/loud" in caplog.text

    def test_query_logging_follows_setting(self, caplog, monkeypatch):
        from config import settings
        from utils.debug import log_db_query
        monkeypatch.setattr(logging.getLogger("comfort.db"), "propagate", True)
        monkeypatch.setattr(settings, "debug_log_db_queries", False)

        with caplog.at_level(logging.DEBUG, logger="comfort.db"):
            log_db_query("SELECT", "quiet_table", 1.0)
            log_db_query("UPDATE", "failing_table", 1.0, error="boom")

        assert "quiet_table" not in caplog.text
        assert "failing_table" in caplog.text

        monkeypatch.setattr(settings, "debug_log_db_queries", True)
        with caplog.at_level(logging.DEBUG, logger="comfort.db"):
            log_db_query("SELECT", "loud_table", 1.0)

        assert "loud_table" in caplog.text

    def test_debug_context_propagates_errors(self):
        from utils.debug import DebugContext
        with pytest.raises(ValueError):
            with DebugContext("failing_block"):
                raise ValueError("boom")

    def test_debug_stats_summary(self):
        from utils.debug import DebugStats
        stats = DebugStats()
        stats.record_request("/api/v1/usage", 200, 10.0)
        stats.record_request("/api/v1/usage", 403, 30.0)

        summary = stats.get_summary()["requests"]
        assert summary == {"total": 2, "avg_duration_ms": 20.0, "error_count": 1}
