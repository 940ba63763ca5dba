"""
Erreurs métier levées par les services.

Les rejets de scan attendus (doublon, code expiré...) ne passent pas par ces
exceptions : ils sont renvoyés comme résultat (voir schemas.scan). Les
exceptions ci-dessous sont converties en réponses HTTP par le handler
enregistré dans main.py.
"""


class LectureTrackError(Exception):
    """Base de toutes les erreurs métier."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LectureTrackError, ValueError):
    """Entrée mal formée, détectée avant toute écriture (ValueError pour les validateurs pydantic)."""
    status_code = 400


class NotFoundError(LectureTrackError):
    """Cours, QR code ou présence introuvable."""
    status_code = 404


class AuthorizationError(LectureTrackError):
    """L'utilisateur n'est pas propriétaire de la ressource."""
    status_code = 403


class ConflictError(LectureTrackError):
    """Contrainte d'unicité ou course sur le budget de scans perdue."""
    status_code = 409

    def __init__(self, message: str, reason: str = "conflict"):
        super().__init__(message)
        self.reason = reason


class ExpiredOrExhaustedError(LectureTrackError):
    """QR code expiré, désactivé ou ayant atteint son nombre maximal de scans."""
    status_code = 410


class PersistenceError(LectureTrackError):
    """Écriture en base impossible (erreur serveur)."""
    status_code = 500
