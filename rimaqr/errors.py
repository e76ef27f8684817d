"""Erreurs métier du moteur commandes/droits.

Taxonomie:
- ValidationError: champ requis manquant, quantité sous le minimum, personnalisation absente.
  Récupérée localement et affichée en ligne.
- DataAccessError: échec de lecture/écriture côté backend. Affichée avec possibilité de réessayer.
- GatewayError: émission du jeton de paiement impossible ou réponse passerelle invalide.
  Fatale pour la tentative en cours; le retry relance l'émission depuis zéro.
- InvalidTransitionError: transition interdite du tunnel de commande (ex: annuler une commande payée).
"""
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    VALIDATION = "VALIDATION_ERROR"
    DATA_ACCESS = "DATA_ACCESS_ERROR"
    GATEWAY = "GATEWAY_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"


class DomainError(Exception):
    """Erreur métier avec code et message affichable à l'utilisateur."""

    code: ErrorCode = ErrorCode.VALIDATION
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    code = ErrorCode.VALIDATION

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class DataAccessError(DomainError):
    code = ErrorCode.DATA_ACCESS
    retryable = True

    def __init__(self, operation: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Échec d'accès aux données ({operation})")
        self.operation = operation


class GatewayError(DomainError):
    code = ErrorCode.GATEWAY
    retryable = True

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason


class InvalidTransitionError(DomainError):
    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, action: str, step: str) -> None:
        super().__init__(f"Action '{action}' impossible à l'étape '{step}'")
        self.action = action
        self.step = step
