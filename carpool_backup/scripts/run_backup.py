#!/usr/bin/env python3
"""
Script CLI para operações de backup e disaster recovery.

Uso:
    python -m carpool_backup.scripts.run_backup full
    python -m carpool_backup.scripts.run_backup incremental --since 2024-01-01T00:00:00+00:00
    python -m carpool_backup.scripts.run_backup restore --backup-id <id> --collections carpool.trips
    python -m carpool_backup.scripts.run_backup validate --backup-id <id>
    python -m carpool_backup.scripts.run_backup cleanup
    python -m carpool_backup.scripts.run_backup metrics
    python -m carpool_backup.scripts.run_backup disaster-recovery --confirm

Configuração via variáveis de ambiente BACKUP_* (ver BackupConfiguration).
"""

import argparse
import sys
from datetime import datetime
from typing import List, Optional

import structlog

from carpool_backup.config import BackupConfiguration
from carpool_backup.logging_config import configure_logging
from carpool_backup.manager import BackupRecoveryManager
from carpool_backup.models import RestoreOptions

logger = structlog.get_logger(__name__)


def build_manager(config: BackupConfiguration) -> BackupRecoveryManager:
    return BackupRecoveryManager.from_configuration(config)


def push_metrics(manager: BackupRecoveryManager, pushgateway_url: str, job: str) -> None:
    """Envia métricas do processo para o Prometheus Pushgateway."""
    from prometheus_client import push_to_gateway

    try:
        push_to_gateway(pushgateway_url, job=job, registry=manager.metrics.registry)
        logger.info("Métricas enviadas para Pushgateway", url=pushgateway_url)
    except OSError as e:
        logger.warning("Erro ao enviar métricas para Pushgateway", error=str(e))


def run_command(args: argparse.Namespace, manager: BackupRecoveryManager) -> int:
    """
    Executa o subcomando escolhido.

    Returns:
        Exit code (0 sucesso, 1 falha)
    """
    if args.command == "full":
        metadata = manager.perform_full_backup()
        print(metadata.model_dump_json(indent=2))

    elif args.command == "incremental":
        since = datetime.fromisoformat(args.since) if args.since else None
        metadata = manager.perform_incremental_backup(since=since)
        print(metadata.model_dump_json(indent=2))

    elif args.command == "cleanup":
        report = manager.cleanup_old_backups()
        print(report.model_dump_json(indent=2))
        return 1 if report.failed else 0

    elif args.command in ("restore", "validate"):
        options = RestoreOptions(
            backup_id=args.backup_id,
            target_database=getattr(args, "target_database", None),
            collections=getattr(args, "collections", None),
            point_in_time=(
                datetime.fromisoformat(args.point_in_time)
                if getattr(args, "point_in_time", None)
                else None
            ),
            validate_only=args.command == "validate",
        )
        report = manager.restore_from_backup(options)
        print(report.model_dump_json(indent=2))
        return 1 if report.documents_failed else 0

    elif args.command == "metrics":
        print(manager.get_backup_metrics().model_dump_json(indent=2))

    elif args.command == "disaster-recovery":
        if not args.confirm:
            logger.error(
                "Disaster recovery requer confirmação",
                hint="Use --confirm para executar o plano",
            )
            return 1
        report = manager.execute_disaster_recovery()
        print(report.model_dump_json(indent=2))

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backup e disaster recovery do banco de documentos do carpool"
    )
    parser.add_argument("--verbose", action="store_true", help="Logging detalhado")
    parser.add_argument(
        "--pushgateway-url",
        type=str,
        help="URL do Prometheus Pushgateway para enviar métricas",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("full", help="Executar backup full")

    incremental = subparsers.add_parser("incremental", help="Executar backup incremental")
    incremental.add_argument(
        "--since",
        type=str,
        help="Timestamp ISO de referência. Default: último backup concluído",
    )

    subparsers.add_parser("cleanup", help="Remover backups fora da retenção")

    restore = subparsers.add_parser("restore", help="Restaurar backup")
    restore.add_argument("--backup-id", required=True, help="Id do backup")
    restore.add_argument("--target-database", type=str, help="Database de destino")
    restore.add_argument(
        "--collections",
        nargs="+",
        help="Collections a restaurar (<database>.<collection> ou <collection>)",
    )
    restore.add_argument(
        "--point-in-time", type=str, help="Hint de ponto no tempo (apenas log)"
    )

    validate = subparsers.add_parser("validate", help="Validar checksums do backup")
    validate.add_argument("--backup-id", required=True, help="Id do backup")

    subparsers.add_parser("metrics", help="Exibir métricas do catálogo")

    dr = subparsers.add_parser("disaster-recovery", help="Executar plano de disaster recovery")
    dr.add_argument("--confirm", action="store_true", help="Confirmar execução do plano")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint do script."""
    args = build_parser().parse_args(argv)

    config = BackupConfiguration()
    configure_logging(
        level="DEBUG" if args.verbose else config.log_level,
        fmt=config.log_format,
    )

    logger.info("Iniciando comando de backup", command=args.command)

    try:
        manager = build_manager(config)
        exit_code = run_command(args, manager)
    except Exception as e:
        logger.error(
            "Erro fatal no comando de backup",
            command=args.command,
            error=str(e),
            error_type=type(e).__name__,
        )
        return 1

    if args.pushgateway_url:
        push_metrics(manager, args.pushgateway_url, job=f"carpool_backup_{args.command}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
