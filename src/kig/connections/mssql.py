"""
MS SQL Server connection with Azure AD authentication.

- Async-friendly with asyncio.to_thread() for all blocking operations
- Instance-based token caching
- Falls back to SQL authentication when a username is configured
"""
import asyncio
import struct
import time
from typing import Any, Dict, Optional

from pydantic import Field, model_validator

from kig.utility.exceptions import QueryConnectionError

from .base import BaseConnection, BaseConnectionConfig
from .constants import MSSQL_CONNECTION_DEFAULTS


class MssqlConnectionConfig(BaseConnectionConfig):
    """
    Configuration for MS SQL Server.

    Example:
        ```yaml
        connections:
          salesforce_db:
            type: mssql
            server: myserver.database.windows.net
            database: mydatabase
        ```
    """

    type: str = Field(default="mssql", description="Connection type")
    server: str = Field(..., description="SQL Server address")
    database: str = Field(..., description="Database name")
    driver: str = Field(
        default=MSSQL_CONNECTION_DEFAULTS.driver, description="ODBC driver name"
    )
    encrypt: str = Field(
        default=MSSQL_CONNECTION_DEFAULTS.encrypt, description="Enable encryption"
    )
    trust_cert: str = Field(
        default=MSSQL_CONNECTION_DEFAULTS.trust_cert,
        description="Trust server certificate",
    )
    timeout: int = Field(
        default=MSSQL_CONNECTION_DEFAULTS.timeout,
        ge=1,
        description="Connection timeout in seconds",
    )
    username: Optional[str] = Field(
        None, description="SQL authentication user (Azure AD is used when unset)"
    )
    password: Optional[str] = Field(None, description="SQL authentication password")

    @model_validator(mode="after")
    def validate_credentials(self):
        """A password without a username is almost certainly a mistake."""
        if self.password is not None and self.username is None:
            raise ValueError("'password' requires 'username' for SQL authentication")
        return self


class MssqlConnection(BaseConnection, connection_type="mssql"):
    """
    MS SQL Server connection.

    Authentication:
    - Azure AD via DefaultAzureCredential (Managed Identity, Azure CLI,
      Environment Credentials, ...) when no username is configured
    - SQL authentication when username/password are configured

    Example:
        ```python
        connection = MssqlConnection(
            "warehouse",
            MssqlConnectionConfig(
                server="myserver.database.windows.net", database="mydatabase"
            ),
        )
        await connection.open()
        ```
    """

    config_class = MssqlConnectionConfig

    # SQL Server constant for access token
    SQL_COPT_SS_ACCESS_TOKEN = 1256

    # Token refresh buffer (seconds before expiry)
    TOKEN_EXPIRY_BUFFER = 300

    def __init__(self, name: str, config: MssqlConnectionConfig):
        super().__init__(name, config)
        self._credential = None
        self._token = None

    async def _connect(self) -> Any:
        import pyodbc

        try:
            if self.config.username:
                conn_str, attrs_before = self._build_connection_string(None)
            else:
                token = await self._get_token()
                conn_str, attrs_before = self._build_connection_string(token)

            self.logger.debug(
                f"Connecting to {self._mask_server()}.{self.config.database}"
            )
            return await asyncio.to_thread(
                pyodbc.connect, conn_str, attrs_before=attrs_before
            )

        except pyodbc.Error as e:
            error_msg = str(e)
            if "IM002" in error_msg:
                raise QueryConnectionError(
                    f"ODBC Driver not found. Expected: {self.config.driver}.",
                    cause=e,
                ) from e
            raise QueryConnectionError(
                f"MSSQL connection failed: {error_msg}", cause=e
            ) from e
        except QueryConnectionError:
            raise
        except Exception as e:
            raise QueryConnectionError(
                f"Failed to create MSSQL connection: {str(e)}", cause=e
            ) from e

    async def _get_token(self) -> Any:
        """
        Get Azure AD token with caching.

        Only refreshes when within TOKEN_EXPIRY_BUFFER seconds of expiry.
        """
        if self._token:
            time_remaining = self._token.expires_on - time.time()
            if time_remaining > self.TOKEN_EXPIRY_BUFFER:
                self.logger.debug(
                    f"Using cached token ({time_remaining:.0f}s remaining)"
                )
                return self._token

        if self._credential is None:
            from azure.identity import DefaultAzureCredential

            self._credential = DefaultAzureCredential()

        self.logger.debug("Fetching new Azure AD token")
        self._token = await asyncio.to_thread(
            self._credential.get_token, "https://database.windows.net/.default"
        )
        return self._token

    def _build_connection_string(self, token: Optional[Any]) -> tuple[str, Dict]:
        """
        Build ODBC connection string and attributes.

        Args:
            token: Azure AD access token, or None for SQL authentication

        Returns:
            Tuple of (connection_string, attrs_before_dict)
        """
        conn_str = (
            f"DRIVER={{{self.config.driver}}};"
            f"SERVER={self.config.server};"
            f"DATABASE={self.config.database};"
            f"Encrypt={self.config.encrypt};"
            f"TrustServerCertificate={self.config.trust_cert};"
            f"Timeout={self.config.timeout}"
        )

        if token is None:
            conn_str += f";UID={self.config.username};PWD={self.config.password or ''}"
            return conn_str, {}

        return conn_str, {self.SQL_COPT_SS_ACCESS_TOKEN: self._convert_token_to_bytes(token)}

    def _convert_token_to_bytes(self, token: Any) -> bytes:
        """
        Convert Azure AD token to the length-prefixed UTF-16LE format
        SQL Server expects for ODBC access-token authentication.
        """
        encoded_bytes = token.token.encode("utf-16-le")
        return struct.pack("<i", len(encoded_bytes)) + encoded_bytes

    def _mask_server(self) -> str:
        """Mask server name for logging (show only first part)."""
        if "." in self.config.server:
            return self.config.server.split(".")[0]
        return self.config.server

    def describe(self) -> str:
        return f"mssql {self._mask_server()}.{self.config.database}"
