"""
Tests for the connection registry and connection configurations.
"""
import pytest

from kig.connections import (
    BaseConnection,
    MssqlConnection,
    MssqlConnectionConfig,
    OdbcConnection,
    SqliteConnection,
)
from kig.utility.exceptions import ConfigError


class TestConnectionRegistry:
    def test_builtin_types_are_registered(self):
        assert {"sqlite", "odbc", "mssql"} <= set(BaseConnection.available_types())

    def test_create_from_dict(self, tmp_path):
        connection = BaseConnection.create(
            "local", {"type": "sqlite", "path": str(tmp_path / "a.db")}
        )
        assert isinstance(connection, SqliteConnection)
        assert connection.name == "local"
        assert not connection.is_open

    def test_create_odbc(self):
        connection = BaseConnection.create(
            "crm",
            {
                "type": "odbc",
                "connection_string": "DRIVER={PostgreSQL};SERVER=db;PWD=secret",
            },
        )
        assert isinstance(connection, OdbcConnection)
        assert connection.describe() == "odbc DRIVER={PostgreSQL}"
        assert "secret" not in connection.describe()

    def test_create_from_config_model(self):
        config = MssqlConnectionConfig(server="srv.database.windows.net", database="db")
        connection = BaseConnection.create("warehouse", config)
        assert isinstance(connection, MssqlConnection)

    def test_missing_type(self):
        with pytest.raises(ConfigError, match="missing a 'type'"):
            BaseConnection.create("x", {"path": "a.db"})

    def test_unknown_type(self):
        with pytest.raises(ConfigError, match="Unknown connection type 'oracle'"):
            BaseConnection.create("x", {"type": "oracle"})

    def test_invalid_config(self):
        with pytest.raises(ConfigError, match="Invalid configuration"):
            BaseConnection.create("x", {"type": "sqlite", "path": "  "})

    def test_fetch_size_must_be_positive(self):
        with pytest.raises(ConfigError):
            BaseConnection.create("x", {"type": "sqlite", "path": "a.db", "fetch_size": 0})


class TestMssqlConnection:
    def make(self, **overrides):
        config = MssqlConnectionConfig(
            server="myserver.database.windows.net", database="sales", **overrides
        )
        return MssqlConnection("warehouse", config)

    def test_sql_auth_connection_string(self):
        connection = self.make(username="reader", password="pw")

        conn_str, attrs = connection._build_connection_string(None)

        assert "DRIVER={ODBC Driver 18 for SQL Server}" in conn_str
        assert "SERVER=myserver.database.windows.net" in conn_str
        assert "DATABASE=sales" in conn_str
        assert conn_str.endswith("UID=reader;PWD=pw")
        assert attrs == {}

    def test_token_connection_string(self):
        class Token:
            token = "abc"

        connection = self.make()
        conn_str, attrs = connection._build_connection_string(Token())

        assert "UID=" not in conn_str
        token_bytes = attrs[MssqlConnection.SQL_COPT_SS_ACCESS_TOKEN]
        # 4-byte little-endian length prefix, then UTF-16LE
        assert token_bytes[:4] == (6).to_bytes(4, "little")
        assert token_bytes[4:] == "abc".encode("utf-16-le")

    def test_describe_masks_server(self):
        assert self.make().describe() == "mssql myserver.sales"

    def test_password_without_username_is_rejected(self):
        with pytest.raises(ValueError):
            MssqlConnectionConfig(server="s", database="d", password="pw")
