"""JSON Export Store Test Suite.

This module contains tests for the JsonGovernanceStore class covering:
- Loading table exports from a directory
- Rebuilding current tables absent from the export
- Upstream failures for missing or malformed exports
"""

import json

import pytest

from errors import UpstreamUnavailableError
from events.models import Table
from query.predicates import Eq
from storage.json_store import JsonGovernanceStore


def write_table(directory, name, rows):
    (directory / f"{name}.json").write_text(json.dumps(rows), encoding="utf-8")


@pytest.fixture
def export_dir(tmp_path):
    """Minimal export without any current-state table."""
    write_table(
        tmp_path,
        "proposals",
        [{"repository": "ethereum/EIPs", "number": 1559, "title": "Fee market", "authors": "Vitalik, Eric"}],
    )
    write_table(
        tmp_path,
        "status_events",
        [
            {"repository": "ethereum/EIPs", "number": 1559, "to_status": "Draft", "changed_at": "2019-04-13T00:00:00Z"},
            {
                "repository": "ethereum/EIPs",
                "number": 1559,
                "from_status": "Draft",
                "to_status": "Final",
                "changed_at": "2021-08-05T00:00:00Z",
            },
        ],
    )
    write_table(
        tmp_path,
        "governance_events",
        [
            {
                "repository": "ethereum/EIPs",
                "pr_number": 42,
                "state": "WAITING_ON_EDITOR",
                "changed_at": "2024-06-01T00:00:00Z",
            }
        ],
    )
    return tmp_path


@pytest.mark.asyncio
async def test_load_export_and_reconcile_current_tables(export_dir):
    """Test loading an export and deriving missing current tables."""
    store = JsonGovernanceStore(str(export_dir))

    proposal = await store.get_proposal(1559)
    assert proposal.authors == ["Vitalik", "Eric"]

    snapshots = await store.select(Table.SNAPSHOTS)
    assert [(row.number, row.status) for row in snapshots] == [(1559, "Final")]

    states = await store.select(Table.GOVERNANCE_STATES, Eq("pr_number", 42))
    assert states[0].current_state == "WAITING_ON_EDITOR"

    assert await store.select(Table.PULL_REQUESTS) == []
    assert store.load() is store.load()


def test_missing_directory_is_upstream_failure(tmp_path):
    """Test that an absent export directory is reported as unavailable."""
    store = JsonGovernanceStore(str(tmp_path / "missing"))
    with pytest.raises(UpstreamUnavailableError):
        store.load()


def test_malformed_file_is_upstream_failure(tmp_path):
    """Test that an unreadable table file is reported as unavailable."""
    (tmp_path / "status_events.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(UpstreamUnavailableError) as exc_info:
        JsonGovernanceStore(str(tmp_path)).load()
    assert "status_events.json" in exc_info.value.source


def test_invalid_rows_are_upstream_failure(tmp_path):
    """Test that rows failing validation are reported as unavailable."""
    write_table(tmp_path, "pull_requests", [{"repository": "ethereum/EIPs", "pr_number": "abc"}])
    with pytest.raises(UpstreamUnavailableError):
        JsonGovernanceStore(str(tmp_path)).load()
