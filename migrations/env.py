"""
Alembic env.py — resolves the database URL from environment variables or Secrets Manager.

Priority order for DB credentials:
  1. LOCAL_DB_* variables  (when ENVIRONMENT=development)
  2. DB_HOST + DB_PASSWORD env vars
  3. AWS Secrets Manager at /wellness-clinic/db/credentials (production)

Usage:
  # Development (local Docker Compose):
  ENVIRONMENT=development alembic upgrade head

  # Production (credentials from Secrets Manager):
  ENVIRONMENT=production alembic upgrade head
"""
import json
import logging
import os
import sys
from pathlib import Path

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

# ---------------------------------------------------------------------------
# Load .env from repo root
# ---------------------------------------------------------------------------
_repo_root = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=_repo_root / ".env", override=False)

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")

logger = logging.getLogger("alembic.env")


def _get_db_url() -> str:
    """Return a psycopg2 connection URL based on the current environment."""
    if ENVIRONMENT == "development":
        host = os.environ.get("LOCAL_DB_HOST", "localhost")
        port = os.environ.get("LOCAL_DB_PORT", "5433")
        name = os.environ.get("LOCAL_DB_NAME", "wellness_clinic_dev")
        user = os.environ.get("LOCAL_DB_USER", "postgres")
        password = os.environ.get("LOCAL_DB_PASSWORD", "localpassword")
        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"

    host = os.environ.get("DB_HOST", "")
    port = os.environ.get("DB_PORT", "5432")
    name = os.environ.get("DB_NAME", "wellness_clinic")
    user = os.environ.get("DB_USER", "postgres")
    password = os.environ.get("DB_PASSWORD", "")

    if host and not password:
        try:
            import boto3

            region = os.environ.get("AWS_REGION", "af-south-1")
            client = boto3.client("secretsmanager", region_name=region)
            secret = client.get_secret_value(SecretId="/wellness-clinic/db/credentials")
            creds = json.loads(secret["SecretString"])
            user = creds.get("username", user)
            password = creds.get("password", "")
        except Exception as exc:
            logger.error("Failed to retrieve DB credentials from Secrets Manager: %s", exc)
            sys.exit(1)

    if not host:
        logger.error("DB_HOST is not set. Update your .env file.")
        sys.exit(1)

    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"


config = context.config
config.set_main_option("sqlalchemy.url", _get_db_url())

if config.config_file_name is not None:
    import logging.config
    logging.config.fileConfig(config.config_file_name)

target_metadata = None  # raw SQL migrations; ORM models are not autogenerated from


def run_migrations_offline() -> None:
    """Generate the SQL script without a DB connection."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
