"""
Notificação de contatos do plano de disaster recovery.
"""

from abc import ABC, abstractmethod

import structlog

from .models import Contact

logger = structlog.get_logger(__name__)


class AlertNotifier(ABC):
    """Envia alerta crítico para um contato."""

    @abstractmethod
    def critical_alert(self, contact: Contact, message: str) -> None:
        pass


class LoggingAlertNotifier(AlertNotifier):
    """Registra o alerta em log com nível critical."""

    def critical_alert(self, contact: Contact, message: str) -> None:
        logger.critical(
            message,
            contact=contact.name,
            role=contact.role,
            email=contact.email,
            phone=contact.phone,
        )
