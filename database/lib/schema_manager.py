"""Database schema management module.

This module handles database schema versioning and migrations. Schema
definitions live in ``database/schema/vN.py`` as a ``schema`` dict with
tables, columns, foreign keys, indexes and incremental migration SQL.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'

def load_schema_files(schema_dir: Path = SCHEMA_DIR) -> Dict[int, Dict[str, Any]]:
    """Load all schema version files.

    Returns:
        Dict mapping version numbers to schema definitions, sorted by version

    Raises:
        DatabaseSchemaError: If a schema file is malformed
    """
    schema_files = {}

    for file in schema_dir.glob('v*.py'):
        try:
            version = int(file.stem[1:])  # Extract number from vX.py
        except ValueError:
            logger.warning(f"Invalid schema filename: {file}")
            continue

        module = importlib.import_module(f"database.schema.{file.stem}")
        if not hasattr(module, 'schema'):
            raise DatabaseSchemaError(f"Schema file {file} missing 'schema' definition")

        schema = module.schema
        if schema['version'] != version:
            raise DatabaseSchemaError(
                f"Schema version mismatch in {file}: "
                f"Expected v{version}, got v{schema['version']}"
            )
        schema_files[version] = schema

    return dict(sorted(schema_files.items()))

def latest_schema(schema_dir: Path = SCHEMA_DIR) -> Dict[str, Any]:
    """Return the newest schema definition."""
    schema_files = load_schema_files(schema_dir)
    if not schema_files:
        raise DatabaseSchemaError("No valid schema files found in schema directory")
    return schema_files[max(schema_files)]

class SchemaManager:
    """Manages database schema versioning and migrations."""

    def __init__(self, pool, schema_dir: Path = SCHEMA_DIR) -> None:
        """Initialize schema manager.

        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir)
        self.current_version = 0

    async def initialize(self) -> None:
        """Create the schema version table and apply pending migrations.

        Raises:
            DatabaseSchemaError: If schema initialization fails
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMP NOT NULL DEFAULT now()
                    )
                ''')
                row = await conn.fetchrow(
                    'SELECT version FROM schema_version ORDER BY version DESC LIMIT 1'
                )
                self.current_version = row['version'] if row else 0

            schema_files = load_schema_files(self._schema_dir)
            if not schema_files:
                raise DatabaseSchemaError("No valid schema files found in schema directory")

            await self._apply_migrations(schema_files)

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    async def _apply_migrations(self, schema_files: Dict[int, Dict[str, Any]]) -> None:
        latest_version = max(schema_files)
        if self.current_version >= latest_version:
            logger.info("Schema is up to date")
            return

        logger.info(f"Updating schema from version {self.current_version} to {latest_version}")

        async with self.pool.acquire() as conn:
            # Fresh install gets the latest schema in one go
            if self.current_version == 0:
                await self._create_fresh_schema(conn, schema_files[latest_version])
                return

            for version in range(self.current_version + 1, latest_version + 1):
                if version not in schema_files:
                    continue
                for migration in schema_files[version].get('migrations', []):
                    await conn.execute(migration)
                await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', version)
                logger.info(f"Successfully migrated to version {version}")

    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        # Tables first so foreign keys can reference any of them
        for table in schema.get('tables', []):
            await self._create_table(conn, table)
        for table in schema.get('tables', []):
            await self._add_constraints(conn, table)

        await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', schema['version'])
        logger.info(f"Successfully created fresh schema version {schema['version']}")

    async def _create_table(self, conn, table: Dict[str, Any]) -> None:
        columns = []
        for col in table['columns']:
            col_def = f"{col['name']} {col['type']}"
            if col.get('primary_key'):
                col_def += " PRIMARY KEY"
            if 'default' in col:
                col_def += f" DEFAULT {col['default']}"
            if col.get('nullable') is False:
                col_def += " NOT NULL"
            columns.append(col_def)

        await conn.execute(f'''
            CREATE TABLE IF NOT EXISTS {table['name']} (
                {', '.join(columns)}
            )
        ''')
        logger.info(f"Created table {table['name']}")

    async def _add_constraints(self, conn, table: Dict[str, Any]) -> None:
        for fk in table.get('foreign_keys', []):
            try:
                await conn.execute(f'''
                    ALTER TABLE {table['name']}
                    ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]}
                    FOREIGN KEY ({', '.join(fk['columns'])})
                    REFERENCES {fk['references']}
                ''')
            except Exception as e:
                if 'already exists' not in str(e):
                    raise
                logger.debug(f"Foreign key already exists: {e}")

        for idx in table.get('indexes', []):
            unique = 'UNIQUE ' if idx.get('unique') else ''
            where = f" WHERE {idx['where']}" if 'where' in idx else ''
            await conn.execute(f'''
                CREATE {unique}INDEX IF NOT EXISTS {idx['name']}
                ON {table['name']}({', '.join(idx['columns'])})
                {where}
            ''')
            logger.info(f"Created index {idx['name']} on {table['name']}")
