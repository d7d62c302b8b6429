"""
JSON Export Storage Module.

Reads a governance event log export from disk. The export is a directory with
one JSON file per table (``status_events.json``, ``pull_requests.json``, ...),
each holding a list of row objects. The export is loaded lazily on first
query and then served from memory.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from config import logger
from errors import UpstreamUnavailableError
from events.base import GovernanceStore
from events.memory_store import InMemoryGovernanceStore
from events.models import (
    CategoryEvent,
    ContributorActivity,
    DeadlineEvent,
    GovernanceState,
    GovernanceStateEvent,
    Proposal,
    ProposalSnapshot,
    PullRequest,
    StatusEvent,
    Table,
    Upgrade,
    UpgradeCompositionCurrent,
    UpgradeCompositionEvent,
)
from query.predicates import Predicate

TABLE_MODELS: Dict[Table, Type[BaseModel]] = {
    Table.PROPOSALS: Proposal,
    Table.SNAPSHOTS: ProposalSnapshot,
    Table.STATUS_EVENTS: StatusEvent,
    Table.CATEGORY_EVENTS: CategoryEvent,
    Table.DEADLINE_EVENTS: DeadlineEvent,
    Table.PULL_REQUESTS: PullRequest,
    Table.GOVERNANCE_EVENTS: GovernanceStateEvent,
    Table.GOVERNANCE_STATES: GovernanceState,
    Table.CONTRIBUTOR_ACTIVITY: ContributorActivity,
    Table.UPGRADES: Upgrade,
    Table.COMPOSITION_EVENTS: UpgradeCompositionEvent,
    Table.COMPOSITION_CURRENT: UpgradeCompositionCurrent,
}

# current-state tables rebuilt from their logs when the export omits them
DERIVED_TABLES = {
    Table.SNAPSHOTS: "snapshots",
    Table.GOVERNANCE_STATES: "governance_states",
    Table.COMPOSITION_CURRENT: "composition_current",
}

STORE_ARGUMENTS = {
    Table.PROPOSALS: "proposals",
    Table.STATUS_EVENTS: "status_events",
    Table.CATEGORY_EVENTS: "category_events",
    Table.DEADLINE_EVENTS: "deadline_events",
    Table.PULL_REQUESTS: "pull_requests",
    Table.GOVERNANCE_EVENTS: "governance_events",
    Table.CONTRIBUTOR_ACTIVITY: "activity",
    Table.UPGRADES: "upgrades",
    Table.COMPOSITION_EVENTS: "composition_events",
    **DERIVED_TABLES,
}


class JsonGovernanceStore(GovernanceStore):
    """
    Governance store reading a JSON export directory.

    Attributes:
        storage_dir (Path): Directory holding the export files
    """

    def __init__(self, data_dir: str):
        """Initialize the export reader.

        Args:
            data_dir (str): Directory holding the export files.
        """
        self.storage_dir = Path(data_dir)
        self._store: Optional[InMemoryGovernanceStore] = None

    def _get_table_file_path(self, table: Table) -> str:
        """Generate the file path of a table export.

        Args:
            table (Table): Exported table.

        Returns:
            str: Complete file path of the table export.
        """
        return os.path.join(self.storage_dir, f"{table.value}.json")

    def _load_table(self, table: Table) -> Optional[List[Any]]:
        """Load and validate the rows of one table.

        Returns:
            Optional[List[Any]]: Validated rows, None when the file is absent.

        Raises:
            UpstreamUnavailableError: If the file cannot be read or parsed.
        """
        file_path = self._get_table_file_path(table)
        if not os.path.exists(file_path):
            return None

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("expected a list of rows")
            model = TABLE_MODELS[table]
            return [model(**row) for row in data]

        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error(
                {
                    "message": "Failed to load table export",
                    "table": table.value,
                    "file": file_path,
                    "error": str(e),
                }
            )
            raise UpstreamUnavailableError(file_path, str(e)) from e

    def load(self) -> InMemoryGovernanceStore:
        """Load the whole export into memory.

        Returns:
            InMemoryGovernanceStore: Store serving the loaded rows.

        Raises:
            UpstreamUnavailableError: If the export directory is missing or a
                file is unreadable.
        """
        if self._store is not None:
            return self._store

        if not self.storage_dir.is_dir():
            logger.error(
                {
                    "message": "Export directory not found",
                    "directory": str(self.storage_dir),
                }
            )
            raise UpstreamUnavailableError(str(self.storage_dir), "directory not found")

        arguments = {}
        for table, argument in STORE_ARGUMENTS.items():
            rows = self._load_table(table)
            if rows is None:
                if table in DERIVED_TABLES:
                    continue
                rows = []
            arguments[argument] = rows

        self._store = InMemoryGovernanceStore(**arguments)
        logger.info(
            {
                "message": "Governance export loaded",
                "directory": str(self.storage_dir),
                "tables": sorted(argument for argument in arguments),
            }
        )
        return self._store

    async def select(self, table: Table, where: Optional[Predicate] = None) -> List[Any]:
        return await self.load().select(table, where)
