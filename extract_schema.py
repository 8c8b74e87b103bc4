import json

from db import ReadOnlyPool


def _get(row, key, pos=0):
    """Safely extract a column from a DB row.

    Supports dictionary rows with different key casings (e.g. TABLE_NAME) and
    tuple/list rows (by position).
    """
    if isinstance(row, dict):
        if key in row:
            return row[key]
        k_lower = key.lower()
        for k, v in row.items():
            if k.lower() == k_lower:
                return v
        raise KeyError(f"Column '{key}' not found in DB row. Available columns: {list(row.keys())}")
    try:
        return row[pos]
    except (IndexError, TypeError) as e:
        raise KeyError(f"Cannot extract '{key}' from row of type {type(row)}: {row}") from e


def _text(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return value


def extract_schema(pool: ReadOnlyPool, database: str) -> dict:
    """Tables and column types of the sandbox database, as visible to the read-only identity."""
    schema = {}

    with pool.connection() as conn:
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute("""
                SELECT table_name, column_name, data_type
                FROM information_schema.columns
                WHERE table_schema = %s
                ORDER BY table_name, ordinal_position
            """, (database,))
            rows = cursor.fetchall()
        finally:
            cursor.close()

    for row in rows:
        table = _text(_get(row, "table_name", 0))
        column = _text(_get(row, "column_name", 1))
        data_type = _text(_get(row, "data_type", 2))
        schema.setdefault(table, {"columns": {}})
        schema[table]["columns"][column] = str(data_type).upper()

    return schema


if __name__ == "__main__":
    import argparse

    from config import Settings

    parser = argparse.ArgumentParser(description="Print the sandbox schema visible to the read-only user")
    parser.add_argument("--output", help="Write the schema to this JSON file instead of stdout")
    args = parser.parse_args()

    settings = Settings.from_env()
    pool = ReadOnlyPool(settings)
    try:
        schema_json = extract_schema(pool, settings.sandbox_db_name)
    finally:
        pool.close()

    if args.output:
        with open(args.output, "w") as f:
            json.dump(schema_json, f, indent=2)
        print(f"✅ Schema extracted and saved to {args.output}")
    else:
        print(json.dumps(schema_json, indent=2))
