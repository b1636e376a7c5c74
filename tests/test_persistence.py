"""Tests for persistence layer (DuckDB store and provenance tracking)."""

import json

import polars as pl
import pytest

from multispecies_pipeline.config.loader import load_config
from multispecies_pipeline.persistence import PipelineStore, ProvenanceTracker


@pytest.fixture
def test_config(tmp_path):
    """Create a minimal test config."""
    config_path = tmp_path / "test_config.yaml"
    config_path.write_text("""
data_dir: {data_dir}
duckdb_path: {duckdb_path}
versions:
  expression_release: "15.2"
  oma_release: All.Jul2023
analysis:
  only_trusted: true
""".format(
        data_dir=str(tmp_path / "data"),
        duckdb_path=str(tmp_path / "test.duckdb"),
    ))
    return load_config(config_path)


# ============================================================================
# DuckDB Store Tests
# ============================================================================

def test_store_creates_database(tmp_path):
    """Test that PipelineStore creates .duckdb file at specified path."""
    db_path = tmp_path / "nested" / "test.duckdb"
    assert not db_path.exists()

    store = PipelineStore(db_path)
    store.close()

    assert db_path.exists()


def test_save_and_load(tmp_path):
    """Test saving and loading a polars DataFrame."""
    store = PipelineStore(tmp_path / "test.duckdb")

    df = pl.DataFrame({
        "gene_id": ["g1", "g2a", "g2b"],
        "species_id": [1, 2, 2],
        "expression_rank": [10.0, 20.0, None],
    })

    store.save_dataframe(df, "genes", "test genes")
    loaded = store.load_dataframe("genes")

    assert loaded.shape == df.shape
    assert loaded.columns == df.columns
    assert loaded["gene_id"].to_list() == df["gene_id"].to_list()
    assert loaded["expression_rank"].to_list() == df["expression_rank"].to_list()

    store.close()


def test_append_updates_row_count(tmp_path):
    """Test that appending keeps the checkpoint row count current."""
    with PipelineStore(tmp_path / "test.duckdb") as store:
        store.save_dataframe(pl.DataFrame({"val": [1, 2]}), "measurements", "first")
        store.save_dataframe(pl.DataFrame({"val": [3]}), "measurements", "more", replace=False)

        checkpoint = store.list_checkpoints()[0]
        assert checkpoint["row_count"] == 3
        assert store.load_dataframe("measurements")["val"].to_list() == [1, 2, 3]


def test_rejects_non_polars(tmp_path):
    """Test that only polars DataFrames are accepted."""
    with PipelineStore(tmp_path / "test.duckdb") as store:
        with pytest.raises(ValueError, match="polars"):
            store.save_dataframe({"val": [1]}, "measurements")


def test_rejects_unsafe_table_names(tmp_path):
    """Test that table names are restricted to identifiers."""
    with PipelineStore(tmp_path / "test.duckdb") as store:
        with pytest.raises(ValueError, match="Invalid table name"):
            store.save_dataframe(pl.DataFrame({"val": [1]}), "measurements; DROP TABLE x")
        with pytest.raises(ValueError, match="Invalid table name"):
            store.load_dataframe("bad-name")


def test_import_tsv(tmp_path):
    """Test importing a tab-separated file with explicit column types."""
    tsv = tmp_path / "species.tsv"
    tsv.write_text("species_id\tspecies_name\tparent_taxon_id\n9606\tHomo sapiens\t9605\n10090\t\t10088\n")

    with PipelineStore(tmp_path / "test.duckdb") as store:
        rows = store.import_tsv(
            tsv, "species", {"species_id": pl.Int64, "species_name": pl.Utf8}
        )
        loaded = store.load_dataframe("species")

    assert rows == 2
    assert loaded["species_id"].to_list() == [9606, 10090]
    assert loaded["species_name"].to_list() == ["Homo sapiens", None]


def test_import_missing_tsv(tmp_path):
    """Test that a missing input file raises FileNotFoundError."""
    with PipelineStore(tmp_path / "test.duckdb") as store:
        with pytest.raises(FileNotFoundError):
            store.import_tsv(tmp_path / "absent.tsv", "absent")


def test_checkpoint_lifecycle(tmp_path):
    """Test checkpoint lifecycle: save -> has -> delete -> not has."""
    store = PipelineStore(tmp_path / "test.duckdb")

    df = pl.DataFrame({"col": [1, 2, 3]})

    assert not store.has_checkpoint("test_table")

    store.save_dataframe(df, "test_table", "test")
    assert store.has_checkpoint("test_table")

    store.delete_checkpoint("test_table")
    assert not store.has_checkpoint("test_table")
    assert store.load_dataframe("test_table") is None

    store.close()


def test_list_checkpoints(tmp_path):
    """Test listing checkpoints returns metadata."""
    store = PipelineStore(tmp_path / "test.duckdb")

    for i in range(3):
        df = pl.DataFrame({"val": list(range(i + 1))})
        store.save_dataframe(df, f"table_{i}", f"description {i}")

    checkpoints = store.list_checkpoints()

    assert len(checkpoints) == 3
    for ckpt in checkpoints:
        assert set(ckpt) == {"table_name", "created_at", "row_count", "description"}

    table_0 = [c for c in checkpoints if c["table_name"] == "table_0"][0]
    assert table_0["row_count"] == 1
    assert table_0["description"] == "description 0"

    store.close()


def test_export_parquet(tmp_path):
    """Test exporting table to Parquet."""
    store = PipelineStore(tmp_path / "test.duckdb")

    df = pl.DataFrame({
        "gene_id": ["g1", "g2a", "g2b"],
        "expression_rank": [10.0, 20.0, 30.0],
    })
    store.save_dataframe(df, "genes", "test genes")

    parquet_path = tmp_path / "output" / "genes.parquet"
    store.export_parquet("genes", parquet_path)

    assert parquet_path.exists()
    loaded_from_parquet = pl.read_parquet(parquet_path)
    assert loaded_from_parquet.shape == df.shape
    assert loaded_from_parquet["gene_id"].to_list() == df["gene_id"].to_list()

    store.close()


def test_execute_query_with_params(tmp_path):
    """Test parameterized queries, including list parameters."""
    with PipelineStore(tmp_path / "test.duckdb") as store:
        store.save_dataframe(pl.DataFrame({"gene_id": ["g1", "g2a", "g2b"]}), "genes")

        result = store.execute_query(
            "SELECT gene_id FROM genes WHERE list_contains(?, gene_id) ORDER BY gene_id",
            [["g2b", "g1"]],
        )

    assert result["gene_id"].to_list() == ["g1", "g2b"]


def test_context_manager(tmp_path):
    """Test context manager support."""
    db_path = tmp_path / "test.duckdb"

    df = pl.DataFrame({"col": [1, 2, 3]})

    with PipelineStore(db_path) as store:
        store.save_dataframe(df, "test_table", "test")
        assert store.has_checkpoint("test_table")

    assert store.conn is None

    with PipelineStore(db_path) as store:
        loaded = store.load_dataframe("test_table")
        assert loaded is not None
        assert loaded.shape == df.shape


# ============================================================================
# Provenance Tests
# ============================================================================

def test_provenance_metadata_structure(test_config):
    """Test that provenance metadata has all required keys."""
    tracker = ProvenanceTracker("0.1.0", test_config)

    metadata = tracker.create_metadata()

    assert metadata["pipeline_version"] == "0.1.0"
    assert metadata["data_source_versions"]["expression_release"] == "15.2"
    assert metadata["analysis_settings"]["only_trusted"] is True
    assert metadata["config_hash"] == test_config.config_hash()
    assert "created_at" in metadata
    assert metadata["processing_steps"] == []


def test_provenance_records_steps(test_config):
    """Test that processing steps are recorded with timestamps."""
    tracker = ProvenanceTracker("0.1.0", test_config)

    tracker.record_step("load_tables")
    tracker.record_step("load_similarity_expression_calls", {"call_count": 4})

    steps = tracker.get_steps()

    assert len(steps) == 2
    assert steps[0]["step_name"] == "load_tables"
    assert "details" not in steps[0]
    assert steps[1]["details"]["call_count"] == 4
    assert "timestamp" in steps[1]


def test_provenance_sidecar_roundtrip(test_config, tmp_path):
    """Test saving and loading provenance sidecar."""
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("test_step", {"key": "value"})

    sidecar_path = tracker.save_sidecar(tmp_path / "output.parquet")

    assert sidecar_path == tmp_path / "output.provenance.json"
    loaded = ProvenanceTracker.load_sidecar(sidecar_path)

    assert loaded["pipeline_version"] == "0.1.0"
    assert loaded["config_hash"] == test_config.config_hash()
    assert loaded["processing_steps"][0]["step_name"] == "test_step"


def test_provenance_default_version(test_config):
    """Test that the installed package version is used by default."""
    from multispecies_pipeline import __version__

    assert ProvenanceTracker.from_config(test_config).pipeline_version == __version__


def test_provenance_save_to_store(test_config, tmp_path):
    """Test saving provenance to DuckDB store."""
    store = PipelineStore(tmp_path / "test.duckdb")
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("test_step")

    tracker.save_to_store(store)

    result = store.conn.execute("SELECT * FROM _provenance").fetchall()
    assert len(result) == 1

    row = result[0]
    assert row[0] == "0.1.0"
    assert row[1] == test_config.config_hash()
    assert json.loads(row[3])["oma_release"] == "All.Jul2023"
    steps = json.loads(row[4])
    assert steps[0]["step_name"] == "test_step"

    store.close()
