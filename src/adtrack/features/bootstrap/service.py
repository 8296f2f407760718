from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from adtrack.core.clock import Clock, utc_now
from adtrack.core.config import AdTrackConfig
from adtrack.core.ids import IdsService, new_namespace
from adtrack.core.logging import get_logger
from adtrack.features.fraud.service import FraudService, FraudThresholds
from adtrack.features.frequency.service import FrequencyService
from adtrack.features.persistence.duckdb_adapter import DuckDBAdapter
from adtrack.features.stats.service import StatsService
from adtrack.features.tracking.service import TrackingService


@dataclass
class AdTrackApp:
    cfg: AdTrackConfig
    adapter: DuckDBAdapter
    tracking: TrackingService
    frequency: FrequencyService
    stats: StatsService
    fraud: FraudService | None
    clock: Clock
    logger: Any

    def purge_expired(self) -> int:
        """
        Deletes events older than tracking.retention_days. Returns rows deleted.
        """
        cutoff = self.clock() - timedelta(days=int(self.cfg.tracking.retention_days))
        result = self.adapter.purge_older_than(cutoff)
        self.logger.info(
            "purge_expired",
            extra={"num_rows": result.num_rows, "duckdb_path": self.adapter.path},
        )
        return result.num_rows

    def close(self) -> None:
        self.adapter.close()

    def __enter__(self) -> AdTrackApp:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def bootstrap_app(
    cfg: AdTrackConfig,
    *,
    clock: Clock = utc_now,
    ids: IdsService | None = None,
) -> AdTrackApp:
    logger = get_logger("adtrack", cfg.logging.level)

    # ----- cold storage -----
    adapter = DuckDBAdapter(path=cfg.storage.duckdb_path, clean_slate=cfg.storage.clean_slate)
    adapter.open()

    fraud: FraudService | None = None
    if cfg.fraud.enabled:
        fraud = FraudService(
            store=adapter,
            thresholds=FraudThresholds(
                clicks_per_minute=cfg.fraud.clicks_per_minute,
                impressions_per_minute=cfg.fraud.impressions_per_minute,
                window_seconds=cfg.fraud.window_seconds,
            ),
            clock=clock,
            logger=logger,
        )

    tracking = TrackingService(
        store=adapter,
        ids=ids or IdsService(namespace=new_namespace()),
        ip_hash_salt=cfg.tracking.ip_hash_salt,
        fraud=fraud,
        clock=clock,
        logger=logger,
    )

    logger.info("store_opened", extra={"duckdb_path": adapter.path})

    return AdTrackApp(
        cfg=cfg,
        adapter=adapter,
        tracking=tracking,
        frequency=FrequencyService(store=adapter, clock=clock),
        stats=StatsService(adapter=adapter, clock=clock, logger=logger),
        fraud=fraud,
        clock=clock,
        logger=logger,
    )
