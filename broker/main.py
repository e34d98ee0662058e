from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from threading import Event, Thread
from typing import List, Optional

from datastore.sensor_store import SensorStore, build_default_store
from logging_config import configure_logging
from services.broadcaster import Broadcaster
from services.commands import CommandHandler
from services.egress import MonitorGateway
from services.ingress import SensorIngress
from services.listener import BrokerStartupError
from services.monitors import MonitorRegistry
from settings import Settings, get_settings
from storage.csv_log import CsvSensorLog, build_default_log

logger = logging.getLogger(__name__)


class Broker:
    """Owns the shared store and registry and runs both accept loops."""

    def __init__(
        self,
        store: SensorStore,
        log: CsvSensorLog,
        registry: MonitorRegistry,
        ingress: SensorIngress,
        gateway: MonitorGateway,
    ) -> None:
        self.store = store
        self.log = log
        self.registry = registry
        self.ingress = ingress
        self.gateway = gateway
        self._threads: List[Thread] = []
        self._stopped = Event()

    def start(self) -> None:
        """Prepare storage, replay history, bind both ports and start accepting."""
        try:
            self.log.ensure_root()
        except OSError as exc:
            logger.error(
                "Cannot create data directory",
                extra={"path": str(self.log.root_path), "reason": str(exc)},
            )
        restored = self.log.load_into(self.store)
        logger.info("History replay finished, %d sensor(s) restored", restored)

        self.ingress.bind()
        try:
            self.gateway.bind()
        except BrokerStartupError:
            self.ingress.shutdown()
            raise

        for name, listener in (
            ("sensor-accept", self.ingress),
            ("monitor-accept", self.gateway),
        ):
            thread = Thread(target=listener.serve_forever, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

        sensor_host, sensor_port = self.ingress.address
        monitor_host, monitor_port = self.gateway.address
        logger.info(
            "Broker started: sensors on %s:%d, monitors on %s:%d",
            sensor_host,
            sensor_port,
            monitor_host,
            monitor_port,
            extra={"path": str(self.log.root_path)},
        )

    def serve_forever(self) -> None:
        self.start()
        try:
            self._stopped.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if self._stopped.is_set() and not self._threads:
            return
        self._stopped.set()
        self.ingress.shutdown()
        self.gateway.shutdown()
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads.clear()


def create_broker(
    settings: Optional[Settings] = None,
    store: Optional[SensorStore] = None,
    log: Optional[CsvSensorLog] = None,
) -> Broker:
    """Wire a broker from settings, optionally around an existing store and log."""
    settings = settings or get_settings()
    store = store if store is not None else SensorStore(history_cap=settings.history_cap)
    if log is None:
        log = CsvSensorLog(root_path=Path(settings.data_dir), history_cap=settings.history_cap)
    registry = MonitorRegistry()
    broadcaster = Broadcaster(registry)
    ingress = SensorIngress(
        store=store,
        log=log,
        broadcaster=broadcaster,
        host=settings.sensor_host,
        port=settings.sensor_port,
        workers=settings.ingest_workers,
    )
    gateway = MonitorGateway(
        registry=registry,
        commands=CommandHandler(store=store, broadcaster=broadcaster),
        host=settings.monitor_host,
        port=settings.monitor_port,
    )
    return Broker(store=store, log=log, registry=registry, ingress=ingress, gateway=gateway)


@lru_cache
def build_default_broker() -> Broker:
    return create_broker(store=build_default_store(), log=build_default_log())


def run() -> None:
    configure_logging()
    broker = build_default_broker()
    try:
        broker.serve_forever()
    finally:
        build_default_broker.cache_clear()
