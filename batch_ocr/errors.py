class BatchOCRError(RuntimeError):
    """Erreur de base du package."""


class InputError(BatchOCRError):
    """Liste de fichiers vide: seule erreur remontée par `BatchOrchestrator.run`."""


class ConfigError(BatchOCRError):
    """Configuration absente ou invalide (clé API, variables d'environnement)."""


class ExtractionError(BatchOCRError):
    """Échec de l'OCR pour un fichier. Enregistré sur l'item, le batch continue."""


class PersistenceError(BatchOCRError):
    """Échec d'écriture du résultat. Traité comme un échec d'OCR pour l'item."""


class InvalidTransitionError(BatchOCRError):
    """Transition de statut interdite (ex: completed -> processing)."""
