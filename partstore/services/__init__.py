from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from partstore.core.clock import Clock, SystemClock
from partstore.core.config import Settings, settings as default_settings
from partstore.db.backend import StorageBackend, create_backend

from .alerts import AlertEngine
from .directory import Directory
from .ledger import Ledger
from .notifier import Notifier, get_notifier
from .reconciler import Reconciler


@dataclass
class Services:
    backend: StorageBackend
    directory: Directory
    ledger: Ledger
    alerts: AlertEngine
    reconciler: Reconciler

    async def close(self) -> None:
        await self.backend.dispose()


def build_services(
    config: Settings = default_settings,
    *,
    backend: Optional[StorageBackend] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> Services:
    """Wire the core components from configuration; any collaborator can be injected."""
    clock = clock or SystemClock()
    backend = backend or create_backend(
        config.database_url,
        echo=config.database_echo,
        pool_size=config.database_pool_size,
    )
    directory = Directory(backend, default_min_qty=config.default_min_qty)
    alerts = AlertEngine(
        notifier or get_notifier(config),
        clock=clock,
        throttle_minutes=config.alert_throttle_minutes,
        recipient=config.alert_email,
    )
    ledger = Ledger(
        backend,
        directory,
        alerts,
        clock=clock,
        auto_assign_fixed_location=config.auto_assign_fixed_location,
    )
    return Services(
        backend=backend,
        directory=directory,
        ledger=ledger,
        alerts=alerts,
        reconciler=Reconciler(directory, ledger),
    )
