"""
HashiCorp Vault client for invoicing secrets.

AppRole authentication, KV v2 reads scoped to the 'facturation/' mount path.
Secrets are read once per path and cached for the life of the process; a
long-running worker whose token expired logs in again before the next read.
"""

import os
import logging
import threading
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

# Every path is resolved under this prefix
_SECRET_PREFIX = "facturation"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, Dict[str, str]] = {}
_cache_lock = threading.Lock()


def _ensure_vault_client() -> "VaultClient":
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


class VaultClient:
    """AppRole-authenticated reader for the invoicing secret tree."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        """Read VAULT_* settings from the environment and log in. Fails fast."""
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.vault_role_id = os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")

        if not self.vault_role_id or not self.vault_secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._login()

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

        logger.info(f"Vault client ready: {self.vault_addr}")

    def _login(self) -> None:
        try:
            response = self.client.auth.approle.login(
                role_id=self.vault_role_id,
                secret_id=self.vault_secret_id,
            )
        except Exception as e:
            logger.error(f"AppRole login failed: {e}")
            raise PermissionError(f"AppRole authentication failed: {e}")

        self.client.token = response["auth"]["client_token"]

    def _ensure_token(self) -> None:
        """Log in again if the current token expired or was revoked."""
        if not self.client.is_authenticated():
            logger.info("Vault token no longer valid, logging in again")
            self._login()

    def read_secret(self, path: str) -> Dict[str, str]:
        """
        Read every field of the secret at facturation/{path}.

        Raises:
            PermissionError: Path missing or not readable with this role
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        self._ensure_token()

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"Secret path not found: {full_path}")
            raise PermissionError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to secret {full_path}: {e}")
            raise PermissionError(f"Access denied to secret '{full_path}': {e}")

        return dict(response["data"]["data"])

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of the secret at facturation/{path}.

        Raises:
            PermissionError: Path missing or not readable with this role
            KeyError: Field not present in the secret
        """
        secret = self.read_secret(path)
        return _pick(secret, path, field)


def _pick(secret: Dict[str, str], path: str, field: str) -> str:
    if field not in secret:
        raise KeyError(
            f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
            f"Available: {', '.join(sorted(secret))}"
        )
    return secret[field]


def _cached_field(path: str, field: str) -> str:
    with _cache_lock:
        secret = _secret_cache.get(path)
        if secret is None:
            secret = _ensure_vault_client().read_secret(path)
            _secret_cache[path] = secret
    return _pick(secret, path, field)


def clear_secret_cache() -> None:
    """Forget cached secrets and the client, e.g. after rotating credentials."""
    global _vault_client_instance
    with _cache_lock:
        _secret_cache.clear()
        _vault_client_instance = None


def get_database_url() -> str:
    """Application role PostgreSQL URL (subject to row level security)."""
    return _cached_field("database", "url")
