#!/usr/bin/env python3
"""
Processo de longa duração que executa os backups agendados.

Uso:
    python -m carpool_backup.scripts.run_scheduler
    python -m carpool_backup.scripts.run_scheduler --metrics-port 9108

Encerra com SIGINT/SIGTERM cancelando os jobs.
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import structlog
from prometheus_client import start_http_server

from carpool_backup.config import BackupConfiguration
from carpool_backup.logging_config import configure_logging
from carpool_backup.manager import BackupRecoveryManager

logger = structlog.get_logger(__name__)


async def run_scheduler(manager: BackupRecoveryManager, stop_event: asyncio.Event) -> None:
    """Mantém o scheduler ativo até stop_event ser sinalizado."""
    await manager.scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await manager.scheduler.stop()


async def _serve(config: BackupConfiguration, metrics_port: Optional[int]) -> None:
    manager = BackupRecoveryManager.from_configuration(config)

    if metrics_port:
        start_http_server(metrics_port, registry=manager.metrics.registry)
        logger.info("Servidor de métricas iniciado", port=metrics_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await run_scheduler(manager, stop_event)


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint do script."""
    parser = argparse.ArgumentParser(description="Scheduler de backups do carpool")
    parser.add_argument("--verbose", action="store_true", help="Logging detalhado")
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Porta HTTP para expor métricas Prometheus",
    )
    args = parser.parse_args(argv)

    config = BackupConfiguration()
    configure_logging(
        level="DEBUG" if args.verbose else config.log_level,
        fmt=config.log_format,
    )

    try:
        asyncio.run(_serve(config, args.metrics_port))
    except Exception as e:
        logger.error(
            "Erro fatal no scheduler de backup",
            error=str(e),
            error_type=type(e).__name__,
        )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
