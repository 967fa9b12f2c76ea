import logging
import threading
from pathlib import Path

from .errors import PersistenceError
from .storage import ensure_dir, unique_path


logger = logging.getLogger(__name__)

RESULT_SUFFIX = "_ocr.md"


class ResultWriter:
    """
    Écrit le texte OCR d'un fichier dans `<out_dir>/<nom>_ocr.md` et retourne
    le chemin absolu du fichier écrit.
    """

    def __init__(self, out_dir: Path):
        self.out_dir = Path(out_dir)
        # Plusieurs workers peuvent écrire en même temps des fichiers de même nom.
        self._lock = threading.Lock()

    def write(self, text: str, original_path: str) -> str:
        stem = Path(original_path).stem
        try:
            with self._lock:
                out_dir = ensure_dir(self.out_dir)
                path = unique_path(out_dir, stem, RESULT_SUFFIX)
                path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Écriture du résultat impossible pour {Path(original_path).name}: {e}") from e
        logger.debug("Résultat OCR de %s écrit dans %s", original_path, path)
        return str(path)
