"""
Main Application Entry Point.

Loads the governance event-log export and builds the overview dashboard:
- Event store initialization from the configured data directory
- Snapshot drift check between the event log and the current tables
- Overview dashboard composition
- Summary logging

The application can be run directly against a JSON export of the event log.
"""

import asyncio

from config import settings, logger
from analyzers.dashboard import DashboardComposer
from storage.json_store import JsonGovernanceStore


async def main() -> None:
    """
    Execute the main application workflow.

    Performs the following steps:
    1. Loads the JSON export from the data directory
    2. Reports proposals whose snapshot disagrees with the event log
    3. Composes the overview dashboard
    4. Logs a summary of the dashboard

    Raises:
        UpstreamUnavailableError: If the export cannot be read
        GovernanceAnalyticsError: If a dashboard query fails
    """
    logger.info({"message": "Starting governance analytics", "data_dir": settings.data_dir})

    logger.debug("loading event store...")
    store = JsonGovernanceStore(settings.data_dir).load()

    drift = store.snapshot_drift()
    if drift:
        logger.warning(
            {
                "message": "Snapshots disagree with the status event log",
                "proposals": [f"{row.repository}#{row.number}" for row in drift[:20]],
                "count": len(drift),
            }
        )

    composer = DashboardComposer(store)
    view = await composer.overview()

    lifecycle = {item.label: item.count for item in view.sections["lifecycle"]}
    logger.info(
        {
            "message": "Overview dashboard ready",
            "generated_at": view.generated_at.isoformat(),
            "lifecycle": lifecycle,
            "trending": [item.number for item in view.sections["trending"]],
            "open_prs": view.sections["open_prs"].total_open,
        }
    )

    logger.info("application finished")


if __name__ == "__main__":
    logger.info("Starting application ...")
    asyncio.run(main())
