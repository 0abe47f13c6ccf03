from dbgateway.core.config import Settings, connection_defaults, resolve_connection_args


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("PORT", "4100")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.local, http://b.local")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    app_settings = Settings()

    assert app_settings.PORT == 4100
    assert app_settings.CORS_ORIGINS == ["http://a.local", "http://b.local"]
    assert app_settings.LOG_LEVEL == "DEBUG"
    assert app_settings.CONNECTION_IDLE_TIMEOUT_SECONDS == 0


def test_defaults_are_read_at_call_time(monkeypatch):
    monkeypatch.setenv("PG_HOST", "pg-one")
    assert connection_defaults("postgres")["host"] == "pg-one"

    monkeypatch.setenv("PG_HOST", "pg-two")
    assert connection_defaults("postgres")["host"] == "pg-two"


def test_unset_defaults_are_omitted(monkeypatch):
    monkeypatch.delenv("MYSQL_DATABASE", raising=False)

    defaults = connection_defaults("mysql")

    assert "database" not in defaults
    assert defaults["port"] == "3306"


def test_sqlite_has_no_defaults():
    assert connection_defaults("sqlite") == {}


def test_explicit_arguments_override_environment(monkeypatch):
    monkeypatch.setenv("MYSQL_HOST", "env-host")
    monkeypatch.setenv("MYSQL_USER", "env-user")

    resolved = resolve_connection_args(
        "mysql", {"type": "mysql", "host": "arg-host", "user": None}
    )

    assert resolved["host"] == "arg-host"
    assert resolved["user"] == "env-user"
    assert "type" not in resolved


def test_options_override_everything(monkeypatch):
    monkeypatch.setenv("MSSQL_SERVER", "env-server")

    resolved = resolve_connection_args("mssql", {
        "type": "mssql",
        "server": "arg-server",
        "options": {"server": "option-server", "trust_server_certificate": False},
    })

    assert resolved["server"] == "option-server"
    assert resolved["trust_server_certificate"] is False
    assert "options" not in resolved
