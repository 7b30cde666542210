"""Alembic environment for the public schema.

Only ``quickserve.storage.orm.Base`` (the restaurant registry) is migrated
here. Tenant tables live in ``tenant_<slug>`` schemas, created and repaired
by ``TenantSchemaProvisioner``; autogenerate must never see them.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from quickserve.config import settings
from quickserve.storage.orm import Base

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def include_name(name: str | None, type_: str, parent_names: object) -> bool:
    """Skip tenant schemas when autogenerate reflects the database."""
    if type_ == "schema":
        return name is None or not name.startswith(settings.tenant_schema_prefix)
    return True


def _configure_kwargs() -> dict[str, object]:
    return {
        "target_metadata": target_metadata,
        "include_name": include_name,
        "compare_type": True,
    }


def run_migrations_offline() -> None:
    """Emit SQL to the script output instead of executing it."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations on a sync psycopg v3 connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
