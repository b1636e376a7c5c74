"""DuckDB working store for the tables multi-species requests read from."""

import re
from pathlib import Path
from typing import Optional

import duckdb
import polars as pl

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_table_name(table_name: str) -> str:
    # Table names are interpolated into SQL, values never are
    if not _TABLE_NAME.match(table_name):
        raise ValueError(f"Invalid table name: {table_name!r}")
    return table_name


class PipelineStore:
    """
    DuckDB-backed store for the working tables and derived results.

    Every table written through save_dataframe is registered in a
    _checkpoints table with its row count, so loaded inputs can be listed
    and skipped on later runs.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to DuckDB database file. Parent directories
                     are created automatically.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = duckdb.connect(str(self.db_path))

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS _checkpoints (
                table_name VARCHAR PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                row_count INTEGER,
                description VARCHAR
            )
        """)

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
        replace: bool = True
    ) -> None:
        """
        Save a polars DataFrame as a DuckDB table.

        Args:
            df: DataFrame to save
            table_name: Name for the DuckDB table
            description: Optional description for checkpoint metadata
            replace: If True, replace existing table; if False, append
        """
        if not isinstance(df, pl.DataFrame):
            raise ValueError("df must be a polars.DataFrame")
        table_name = _check_table_name(table_name)

        if replace:
            self.conn.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM df")
        else:
            self.conn.execute(f"INSERT INTO {table_name} SELECT * FROM df")

        row_count = self.conn.execute(f"SELECT COUNT(*) FROM {table_name}").fetchone()[0]
        self.conn.execute("""
            INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        """, [table_name, row_count, description])

    def import_tsv(
        self,
        path: Path,
        table_name: str,
        schema_overrides: Optional[dict] = None,
        description: str = "",
    ) -> int:
        """
        Read a tab-separated file with polars and store it as a table.

        Returns:
            Number of rows imported

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Input table not found: {path}")

        df = pl.read_csv(
            path,
            separator="\t",
            schema_overrides=schema_overrides,
            null_values=["", "NA"],
        )
        self.save_dataframe(df, table_name, description or f"Imported from {path.name}")
        return df.height

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """
        Load a table as a polars DataFrame.

        Returns:
            DataFrame or None if table doesn't exist
        """
        table_name = _check_table_name(table_name)
        try:
            return self.conn.execute(f"SELECT * FROM {table_name}").pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str) -> bool:
        result = self.conn.execute(
            "SELECT COUNT(*) FROM _checkpoints WHERE table_name = ?",
            [table_name]
        ).fetchone()
        return result[0] > 0

    def list_checkpoints(self) -> list[dict]:
        """
        List all checkpoints with metadata, newest first.

        Returns:
            List of dicts with keys table_name, created_at, row_count, description
        """
        result = self.conn.execute("""
            SELECT table_name, created_at, row_count, description
            FROM _checkpoints
            ORDER BY created_at DESC, table_name
        """).fetchall()

        return [
            {
                "table_name": row[0],
                "created_at": row[1],
                "row_count": row[2],
                "description": row[3],
            }
            for row in result
        ]

    def delete_checkpoint(self, table_name: str) -> None:
        """Drop a table and forget its checkpoint."""
        table_name = _check_table_name(table_name)
        self.conn.execute(f"DROP TABLE IF EXISTS {table_name}")
        self.conn.execute(
            "DELETE FROM _checkpoints WHERE table_name = ?",
            [table_name]
        )

    def export_parquet(self, table_name: str, output_path: Path) -> None:
        """Export a table with DuckDB's native Parquet writer."""
        table_name = _check_table_name(table_name)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        target = str(output_path).replace("'", "''")
        self.conn.execute(f"COPY {table_name} TO '{target}' (FORMAT PARQUET)")

    def execute_query(
        self,
        query: str,
        params: Optional[list] = None
    ) -> pl.DataFrame:
        """
        Execute a SQL query and return the result as a polars DataFrame.

        Args:
            query: SQL query to execute
            params: Optional positional query parameters
        """
        if params:
            result = self.conn.execute(query, params)
        else:
            result = self.conn.execute(query)
        return result.pl()

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "PipelineStore":
        return cls(config.duckdb_path)
