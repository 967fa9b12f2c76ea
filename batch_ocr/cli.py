import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

from dotenv import find_dotenv, load_dotenv

from .config import load_config, validate_api_key
from .errors import BatchOCRError
from .ocr_service import SUPPORTED_EXTS
from .orchestrator import BatchOrchestrator
from .storage import write_report, write_status
from .types import ProcessProgress


def find_documents(inputs: List[str]) -> List[Path]:
    """
    Retourne les fichiers supportés (PDF, JPG, JPEG, PNG), dans l'ordre donné.
    Un dossier est parcouru récursivement, trié par chemin.
    """
    docs: List[Path] = []
    for item in inputs:
        root = Path(item).expanduser().resolve()
        if root.is_dir():
            docs.extend(sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in SUPPORTED_EXTS))
        elif root.is_file() and root.suffix.lower() in SUPPORTED_EXTS:
            docs.append(root)
    return docs


def _print_progress(progress: ProcessProgress) -> None:
    print(f"[{progress.completed}/{progress.total}] {progress.current_task}")


def main() -> None:
    # Charger .env avant toute lecture d'os.getenv
    load_dotenv(find_dotenv(usecwd=True), override=False)

    parser = argparse.ArgumentParser(description="Batch OCR: PDF/Images → texte (Typhoon OCR).")
    parser.add_argument("--input", required=True, nargs="+", help="Fichiers ou dossiers contenant des PDF ou des images (JPG/PNG).")
    parser.add_argument("--api-key", required=False, help="Clé API Typhoon (défaut: TYPHOON_API_KEY)")
    parser.add_argument("--out-root", required=False, help="Dossier de sortie (défaut: <tmp>/batch_ocr)")
    parser.add_argument("--dpi", required=False, type=int, default=None, help="DPI pour le rendu des PDF (défaut via env VLM_DPI=200)")
    parser.add_argument("--item-timeout", required=False, type=float, default=None, help="Timeout par fichier en secondes (défaut: aucun)")
    parser.add_argument("--verbose", action="store_true", help="Logs DEBUG")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    last: List[ProcessProgress] = []

    def on_progress(progress: ProcessProgress) -> None:
        last[:] = [progress]
        _print_progress(progress)

    try:
        cfg = load_config(out_root=args.out_root, api_key=args.api_key, dpi=args.dpi, item_timeout=args.item_timeout)
        api_key = validate_api_key(cfg.api_key)
        orchestrator = BatchOrchestrator.from_config(cfg, on_progress)
    except (BatchOCRError, ValueError) as e:
        print(f"Erreur: {e}")
        sys.exit(1)

    docs = find_documents(args.input)
    if not docs:
        print("Aucun fichier PDF/JPG/PNG trouvé.")
        sys.exit(1)

    print(f"{len(docs)} fichier(s) (PDF/JPG/PNG) détecté(s) → sortie: {cfg.out_root}")
    try:
        report = asyncio.run(orchestrator.run([str(d) for d in docs], api_key))
    except KeyboardInterrupt:
        print("Interrompu par l'utilisateur.")
        sys.exit(130)
    except BatchOCRError as e:
        print(f"❌ Échec du batch → {e}")
        sys.exit(1)

    status_path = write_status(cfg.out_root, last[0])
    report_path = write_report(cfg.out_root, report)
    failed = sum(1 for f in last[0].files if f.error)
    print(f"✅ Batch terminé: {last[0].completed - failed} OK, {failed} en erreur.")
    print(f"Status: {status_path}")
    print(f"Rapport: {report_path}")


if __name__ == "__main__":
    main()
