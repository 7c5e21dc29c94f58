"""
Release worker.

Runs the release pass on an interval. Content and subscription stores are
provided by the hosting application through a "module:callable" factory that
returns (content_store, subscription_store).
"""

import argparse
import asyncio
import importlib
import json
import sys
from typing import Any, Callable, Optional, Tuple

from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.errors import PremiumAccessException, ServiceError
from prometheus_client import CollectorRegistry

from .access.models import ReleaseReport
from .config import PremiumConfig, get_premium_config
from .main import create_service
from .scheduler.release import ReleaseScheduler


class ReleaseWorker:
    """Periodic driver for ReleaseScheduler.process_content_releases."""

    def __init__(
        self,
        scheduler: ReleaseScheduler,
        interval_seconds: float = 60,
        metrics: Optional[MetricsCollector] = None
    ):
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.logger = get_logger("premium.release_worker")
        self.passes = 0
        self._stopped = asyncio.Event()

    async def run_once(self) -> ReleaseReport:
        report = await self.scheduler.process_content_releases()
        self.passes += 1
        return report

    async def run(self) -> None:
        """Release due items every interval until stop() is called."""
        self._stopped.clear()
        self.logger.info("Release worker started", interval=self.interval_seconds)

        while not self._stopped.is_set():
            try:
                await self.run_once()
            except Exception as e:
                # Store outages end the pass, not the worker
                self.logger.error("Release pass failed", error=str(e))
                if self.metrics:
                    self.metrics.record_error(type(e).__name__)

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        self.logger.info("Release worker stopped", passes=self.passes)

    def stop(self) -> None:
        self._stopped.set()


def load_store_factory(path: str) -> Callable[[], Any]:
    """Resolve a "module:callable" path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ServiceError("Store factory must look like 'module:callable'", {"store_factory": path})

    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ServiceError("Cannot load store factory", {"store_factory": path, "error": str(e)}) from e

    if not callable(factory):
        raise ServiceError("Store factory is not callable", {"store_factory": path})
    return factory


async def _build_stores(factory: Callable[[], Any]) -> Tuple[Any, Any]:
    stores = factory()
    if asyncio.iscoroutine(stores):
        stores = await stores
    content_store, subscription_store = stores
    return content_store, subscription_store


async def run_worker(config: PremiumConfig, *, once: bool, interval: Optional[float] = None) -> Optional[ReleaseReport]:
    """Build the service from config and run one pass or the loop."""
    if not config.store_factory:
        raise ServiceError("No store factory configured")

    registry = CollectorRegistry()
    metrics = get_metrics_collector(config.service_name, registry)
    if not once:
        metrics.start_metrics_server(config.metrics_port)

    content_store, subscription_store = await _build_stores(load_store_factory(config.store_factory))
    service = create_service(content_store, subscription_store, config, metrics)
    worker = ReleaseWorker(service.scheduler, interval or config.release_interval_seconds, metrics)

    await service.start()
    try:
        if once:
            return await worker.run_once()
        await worker.run()
        return None
    finally:
        await service.stop()


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Release time-gated premium content when it falls due.")
    parser.add_argument("--once", action="store_true", help="Run a single release pass and print its report")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between release passes")
    parser.add_argument("--redis-url", default=None, help="Redis connection URL")
    parser.add_argument("--store-factory", default=None, help="'module:callable' returning (content_store, subscription_store)")
    parser.add_argument("--metrics-port", type=int, default=None, help="Port for the Prometheus metrics endpoint")
    parser.add_argument("--log-level", default=None, help="Log level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)

    overrides = {
        name: value
        for name, value in (
            ("redis_url", args.redis_url),
            ("store_factory", args.store_factory),
            ("metrics_port", args.metrics_port),
            ("log_level", args.log_level),
        )
        if value is not None
    }
    config = get_premium_config(**overrides)
    configure_logging(config.service_name, config.log_level)

    try:
        report = asyncio.run(run_worker(config, once=args.once, interval=args.interval))
    except KeyboardInterrupt:
        return 130
    except PremiumAccessException as exc:
        print(json.dumps(exc.to_response().model_dump()), file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[release-worker] failed: {exc}", file=sys.stderr)
        return 1

    if report is not None:
        print(json.dumps(report.model_dump(mode="json"), indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
