import logging

from .types import ItemStatus, ProcessProgress


logger = logging.getLogger(__name__)

REPORT_SEPARATOR = "\n\n---\n\n"
UNKNOWN_ERROR = "Unknown error"


def build_report(progress: ProcessProgress) -> str:
    """
    Un segment par fichier, dans l'ordre d'entrée: chemin du résultat si
    terminé, message d'erreur si échoué, statut brut sinon.
    """
    segments = []
    for item in progress.files:
        if item.status == ItemStatus.COMPLETED:
            segments.append(item.result or "")
        elif item.status == ItemStatus.FAILED:
            if not item.error:
                logger.error("Item en erreur sans message: %s", item.file_path)
            segments.append(item.error or UNKNOWN_ERROR)
        else:
            segments.append(item.status.value)
    return REPORT_SEPARATOR.join(segments)
