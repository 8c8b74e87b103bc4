# provision.py
# Creates the restricted sandbox identity: SELECT on the sandbox schema, nothing else.
# Run with the privileged (DB_USER) credentials.

from config import ConfigurationError, Settings
from db import WritePool


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def build_provisioning_statements(settings: Settings, host: str = "%") -> list[tuple[str, tuple]]:
    """Ordered (statement, params) pairs that provision the read-only sandbox user."""
    if not settings.readonly_user or not settings.readonly_password:
        raise ConfigurationError("DB_READONLY_USER and DB_READONLY_PASSWORD are required")
    if settings.readonly_user == settings.db_user:
        raise ConfigurationError("DB_READONLY_USER must differ from DB_USER")

    account = (settings.readonly_user, host)
    sandbox_db = quote_identifier(settings.sandbox_db_name)

    return [
        (f"CREATE DATABASE IF NOT EXISTS {sandbox_db}", ()),
        ("CREATE USER IF NOT EXISTS %s@%s IDENTIFIED BY %s", account + (settings.readonly_password,)),
        ("ALTER USER %s@%s IDENTIFIED BY %s", account + (settings.readonly_password,)),
        ("REVOKE ALL PRIVILEGES, GRANT OPTION FROM %s@%s", account),
        (f"GRANT SELECT ON {sandbox_db}.* TO %s@%s", account),
        (
            "ALTER USER %s@%s WITH MAX_USER_CONNECTIONS %s",
            account + (int(settings.readonly_pool_size),),
        ),
    ]


def provision(pool: WritePool, settings: Settings, host: str = "%"):
    statements = build_provisioning_statements(settings, host=host)
    with pool.connection() as conn:
        cursor = conn.cursor()
        try:
            for sql, params in statements:
                cursor.execute(sql, params)
            conn.commit()
        finally:
            cursor.close()
    return statements


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Provision the read-only sandbox database user")
    parser.add_argument("--host", default="%", help="Host part of the MySQL account (default: %%)")
    parser.add_argument("--dry-run", action="store_true", help="Print the statements without running them")
    args = parser.parse_args()

    settings = Settings.from_env()

    if args.dry_run:
        for sql, params in build_provisioning_statements(settings, host=args.host):
            shown = tuple("***" if p == settings.readonly_password else p for p in params)
            print(sql, shown)
        raise SystemExit(0)

    pool = WritePool(settings)
    try:
        provision(pool, settings, host=args.host)
    finally:
        pool.close()

    print(f"✅ Read-only user {settings.readonly_user!r} provisioned on {settings.sandbox_db_name!r}")
