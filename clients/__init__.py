# Infrastructure clients
from clients.base import DatabaseClient, DatabaseError
from clients.vault_client import (
    VaultClient,
    clear_secret_cache,
    get_database_url,
)
from clients.postgres_client import PostgresClient
from clients.sqlite_client import SqliteClient
