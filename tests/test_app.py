"""Application Entry Point Test Suite.

This module contains tests for the main workflow covering:
- Loading an export and composing the overview dashboard
- Upstream failure for a missing export
"""

import json

import pytest

import app
from errors import UpstreamUnavailableError


@pytest.mark.asyncio
async def test_main_builds_overview(tmp_path, monkeypatch):
    """Test the workflow against a small export."""
    (tmp_path / "proposals.json").write_text(
        json.dumps([{"repository": "ethereum/EIPs", "number": 1, "title": "EIP Purpose"}]),
        encoding="utf-8",
    )
    (tmp_path / "status_events.json").write_text(
        json.dumps(
            [{"repository": "ethereum/EIPs", "number": 1, "to_status": "Living", "changed_at": "2015-10-27T00:00:00Z"}]
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(app.settings, "data_dir", str(tmp_path))
    info = []
    monkeypatch.setattr(app.logger, "info", lambda message, *args, **kwargs: info.append(message))

    await app.main()

    summary = next(entry for entry in info if isinstance(entry, dict) and entry.get("message") == "Overview dashboard ready")
    assert summary["lifecycle"]["Living"] == 1
    assert summary["open_prs"] == 0


@pytest.mark.asyncio
async def test_main_without_export(tmp_path, monkeypatch):
    """Test that a missing export directory aborts the run."""
    monkeypatch.setattr(app.settings, "data_dir", str(tmp_path / "absent"))

    with pytest.raises(UpstreamUnavailableError):
        await app.main()
