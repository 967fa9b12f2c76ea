import asyncio
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Deque, List, Optional, Sequence, Tuple

from .admission import AdmissionController
from .config import load_config
from .errors import ExtractionError, InputError
from .ocr_service import OCRService, TyphoonOCRService
from .progress import ProgressStore
from .report import build_report
from .types import ProcessConfig, ProgressCallback
from .writer import ResultWriter


logger = logging.getLogger(__name__)

DONE_TASK = "done"


class BatchOrchestrator:
    """
    Orchestrateur principal: admission → OCR → écriture → rapport.

    Étapes d'un `run`:
    1. Initialisation de la progression (tous les fichiers en attente), publiée une fois.
    2. Boucle d'admission: à chaque tick, le contrôleur d'admission indique
       combien de fichiers démarrer; chacun part dans sa propre tâche asyncio.
    3. Attente de toutes les tâches démarrées (aucune n'est abandonnée).
    4. Publication de l'état final puis construction du rapport.

    Un échec sur un fichier est enregistré sur ce fichier et n'arrête jamais
    le batch. Seule une liste vide lève `InputError`.

    Les appels bloquants (OCR, écriture) tournent dans un pool de threads
    propre au run, avec un thread par fichier: un fichier en timeout garde son
    thread jusqu'à la fin de l'appel, sans bloquer le démarrage des suivants.
    """

    def __init__(
        self,
        ocr: OCRService,
        writer: ResultWriter,
        on_progress: Optional[ProgressCallback] = None,
        admission: Optional[AdmissionController] = None,
        item_timeout: Optional[float] = None,
    ):
        self.ocr = ocr
        self.writer = writer
        self.on_progress = on_progress
        self.admission = admission
        self.item_timeout = item_timeout
        self._cancelled = threading.Event()
        # Boucle et événement du run en cours, pour interrompre une pause d'admission.
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None

    @classmethod
    def from_config(
        cls,
        cfg: ProcessConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "BatchOrchestrator":
        return cls(
            ocr=TyphoonOCRService.from_config(cfg),
            writer=ResultWriter(cfg.out_root),
            on_progress=on_progress,
            admission=AdmissionController(
                batch_size=cfg.batch_size,
                quota=cfg.quota,
                window=cfg.quota_window,
                tick=cfg.tick,
            ),
            item_timeout=cfg.item_timeout,
        )

    def cancel(self) -> None:
        """Arrête les admissions, y compris pendant une pause de quota.
        Les fichiers déjà démarrés vont jusqu'au bout."""
        self._cancelled.set()
        loop, wakeup = self._loop, self._wakeup
        if loop is not None and wakeup is not None:
            try:
                loop.call_soon_threadsafe(wakeup.set)
            except RuntimeError:
                # Boucle déjà fermée: le run est terminé.
                pass

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self, file_paths: Sequence[str], api_key: str) -> str:
        if not file_paths:
            raise InputError("No files to process")

        paths = [str(p) for p in file_paths]
        admission = self.admission or AdmissionController()
        store = ProgressStore(paths, self.on_progress)
        store.publish()

        pending: Deque[Tuple[int, str]] = deque(enumerate(paths))
        handles: List[asyncio.Task] = []
        executor = ThreadPoolExecutor(max_workers=len(paths), thread_name_prefix="batch-ocr")
        self._wakeup = asyncio.Event()
        self._loop = asyncio.get_running_loop()

        logger.info("Batch de %d fichier(s) démarré", len(paths))
        try:
            while pending and not self.cancelled:
                slots = await self._next_slots(admission, len(pending))
                if self.cancelled:
                    break
                for _ in range(slots):
                    index, path = pending.popleft()
                    store.mark_processing(index, task=f"Traitement de {Path(path).name}")
                    handles.append(
                        asyncio.create_task(self._process_item(store, executor, index, path, api_key))
                    )

            if pending:
                logger.warning("Batch annulé: %d fichier(s) non démarré(s)", len(pending))
            if handles:
                store.set_task(f"En attente de {len(handles)} fichier(s) en cours")
            await asyncio.gather(*handles)
        finally:
            self._loop = None
            self._wakeup = None
            # Les threads d'un fichier en timeout finissent en arrière-plan.
            executor.shutdown(wait=False)

        final = store.set_task(DONE_TASK)
        logger.info("Batch terminé: %d/%d fichier(s)", final.completed, final.total)
        return build_report(final)

    async def _next_slots(self, admission: AdmissionController, pending: int) -> int:
        """`admission.next_slots`, interrompu si `cancel()` est appelé pendant l'attente."""
        slots_task = asyncio.ensure_future(admission.next_slots(pending))
        wakeup_task = asyncio.ensure_future(self._wakeup.wait())
        try:
            await asyncio.wait({slots_task, wakeup_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            wakeup_task.cancel()
        if not slots_task.done():
            slots_task.cancel()
            return 0
        return slots_task.result()

    async def _process_item(
        self,
        store: ProgressStore,
        executor: ThreadPoolExecutor,
        index: int,
        path: str,
        api_key: str,
    ) -> None:
        name = Path(path).name
        try:
            location = await self._with_timeout(executor, path, api_key)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("OCR %s échoué: %s", path, message)
            store.mark_failed(index, message, task=f"Échec: {name}")
        else:
            store.mark_completed(index, location, task=f"Terminé: {name}")

    async def _with_timeout(self, executor: ThreadPoolExecutor, path: str, api_key: str) -> str:
        if self.item_timeout is None:
            return await self._extract_and_write(executor, path, api_key)
        try:
            return await asyncio.wait_for(self._extract_and_write(executor, path, api_key), self.item_timeout)
        except asyncio.TimeoutError:
            # Le thread d'OCR continue en arrière-plan, son résultat est ignoré.
            raise ExtractionError(f"Timeout après {self.item_timeout:g}s") from None

    async def _extract_and_write(self, executor: ThreadPoolExecutor, path: str, api_key: str) -> str:
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(executor, self.ocr.extract, api_key, path)
        return await loop.run_in_executor(executor, self.writer.write, text, path)


def process_files(
    api_key: str,
    file_paths: Sequence[str],
    on_progress: Optional[ProgressCallback] = None,
    cfg: Optional[ProcessConfig] = None,
) -> str:
    """Point d'entrée synchrone: exécute un batch complet avec les services par défaut."""
    cfg = cfg or load_config(api_key=api_key)
    orchestrator = BatchOrchestrator.from_config(cfg, on_progress)
    return asyncio.run(orchestrator.run(file_paths, api_key))
