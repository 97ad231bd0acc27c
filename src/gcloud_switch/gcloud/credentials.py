import json
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from ..config import get_gcloud_config_dir
from ..domain.errors import ExternalFailure
from ..profiles.models import AuthState

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


class CredentialRecord(BaseModel):
    """a stored refresh credential as gcloud keeps it in credentials.db."""
    model_config = ConfigDict(extra="allow")

    account: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    token_uri: str = DEFAULT_TOKEN_URI


class CredentialOracle:
    """read-only view of gcloud's credential database plus a liveness probe."""

    def __init__(self, config_dir: Optional[Path] = None, timeout: float = 10.0):
        self.db_path = (config_dir or get_gcloud_config_dir()) / "credentials.db"
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        # mode=ro keeps gcloud's database untouched even if a query goes wrong
        uri = f"file:{self.db_path}?mode=ro"
        try:
            return sqlite3.connect(uri, uri=True)
        except sqlite3.Error as e:
            raise ExternalFailure(f"Failed to open {self.db_path}: {e}") from e

    def lookup(self, account: str) -> Optional[CredentialRecord]:
        """
        find the stored credential for an account.

        returns:
            the record, or None if the account has never logged in

        raises:
            ExternalFailure: if the database exists but cannot be read
        """
        if not self.db_path.exists():
            return None

        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value FROM credentials WHERE account_id = ?", (account,)
            ).fetchone()
        except sqlite3.Error as e:
            raise ExternalFailure(f"Failed to query {self.db_path}: {e}") from e
        finally:
            conn.close()

        if row is None:
            return None
        try:
            blob = json.loads(row[0])
        except (TypeError, ValueError) as e:
            raise ExternalFailure(f"Credentials for {account} are not valid JSON") from e
        if not isinstance(blob, dict):
            raise ExternalFailure(f"Credentials for {account} are not a JSON object")
        return CredentialRecord(account=account, **{k: v for k, v in blob.items() if k != "account"})

    def check_liveness(self, record: CredentialRecord) -> AuthState:
        """
        try a refresh-token exchange.

        fails closed: anything other than a successful exchange is EXPIRED.
        """
        if not (record.client_id and record.client_secret and record.refresh_token):
            return AuthState.EXPIRED
        try:
            response = httpx.post(
                record.token_uri,
                data={
                    "client_id": record.client_id,
                    "client_secret": record.client_secret,
                    "refresh_token": record.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.debug(f"liveness check for {record.account} failed: {e}")
            return AuthState.EXPIRED
        return AuthState.VALID if response.is_success else AuthState.EXPIRED

    def known_accounts(self) -> List[str]:
        """every account with stored credentials. empty if the database is unreadable."""
        if not self.db_path.exists():
            return []
        try:
            conn = self._connect()
        except ExternalFailure as e:
            logger.warning(str(e))
            return []
        try:
            rows = conn.execute("SELECT account_id FROM credentials").fetchall()
        except sqlite3.Error as e:
            logger.warning(f"could not list accounts in {self.db_path}: {e}")
            return []
        finally:
            conn.close()
        return sorted(row[0] for row in rows if row[0])
