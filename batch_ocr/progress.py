"""
Source unique de vérité pour la progression d'un batch.

Toute modification passe par `ProgressStore.mutate`: verrou, transformation,
snapshot, puis publication du snapshot au callback. La publication se fait
hors du verrou d'état mais sous un verrou d'ordre, pris avant de relâcher le
verrou d'état: les snapshots publiés restent donc dans l'ordre des mutations.
"""

import logging
import threading
from typing import Callable, List, Optional

from .errors import InvalidTransitionError
from .types import (
    ALLOWED_TRANSITIONS,
    FileProgress,
    ItemStatus,
    ProcessProgress,
    ProgressCallback,
)


logger = logging.getLogger(__name__)


class ProgressStore:
    def __init__(self, file_paths: List[str], on_progress: Optional[ProgressCallback] = None):
        self._lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._on_progress = on_progress
        self._progress = ProcessProgress(
            files=[FileProgress(file_path=str(p)) for p in file_paths],
            current_task="Initialisation",
            completed=0,
            total=len(file_paths),
        )

    def snapshot(self) -> ProcessProgress:
        with self._lock:
            return self._progress.copy()

    def publish(self) -> ProcessProgress:
        """Publie l'état courant sans le modifier."""
        return self.mutate(lambda progress: None)

    def mutate(
        self,
        fn: Callable[[ProcessProgress], None],
        task: Optional[str] = None,
    ) -> ProcessProgress:
        """
        Applique `fn` de façon atomique puis publie le snapshot résultant.

        `fn` reçoit l'état réel et ne doit faire aucune I/O. Si `fn` lève une
        exception, rien n'est publié (l'état peut avoir été partiellement
        modifié par `fn`, les transitions ci-dessous valident donc avant
        d'écrire).
        """
        self._lock.acquire()
        try:
            fn(self._progress)
            if task is not None:
                self._progress.current_task = task
            terminal = self._progress.count_terminal()
            if self._progress.completed != terminal:
                raise InvalidTransitionError(
                    f"completed={self._progress.completed} mais {terminal} fichier(s) terminé(s)"
                )
            snap = self._progress.copy()
            self._publish_lock.acquire()
        finally:
            self._lock.release()

        try:
            self._deliver(snap)
        finally:
            self._publish_lock.release()
        return snap

    def _deliver(self, snap: ProcessProgress) -> None:
        if not self._on_progress:
            return
        try:
            self._on_progress(snap)
        except Exception as e:
            # Un observateur défaillant ne doit pas casser le batch.
            logger.warning("Progress callback failed: %s", e)

    # Transitions ----------------------------------------------------------

    def set_task(self, task: str) -> ProcessProgress:
        return self.mutate(lambda progress: None, task=task)

    def mark_processing(self, index: int, task: Optional[str] = None) -> ProcessProgress:
        def apply(progress: ProcessProgress) -> None:
            item = progress.files[index]
            _check_transition(item, ItemStatus.PROCESSING)
            item.status = ItemStatus.PROCESSING

        return self.mutate(apply, task=task)

    def mark_completed(self, index: int, result: str, task: Optional[str] = None) -> ProcessProgress:
        if not result:
            raise InvalidTransitionError(f"Résultat vide pour l'item {index}")

        def apply(progress: ProcessProgress) -> None:
            item = progress.files[index]
            _check_transition(item, ItemStatus.COMPLETED)
            item.status = ItemStatus.COMPLETED
            item.result = result
            progress.completed += 1

        return self.mutate(apply, task=task)

    def mark_failed(self, index: int, error: str, task: Optional[str] = None) -> ProcessProgress:
        if not error:
            raise InvalidTransitionError(f"Message d'erreur vide pour l'item {index}")

        def apply(progress: ProcessProgress) -> None:
            item = progress.files[index]
            _check_transition(item, ItemStatus.FAILED)
            item.status = ItemStatus.FAILED
            item.error = error
            progress.completed += 1

        return self.mutate(apply, task=task)


def _check_transition(item: FileProgress, target: ItemStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[item.status]:
        raise InvalidTransitionError(
            f"Transition interdite pour {item.file_path}: {item.status.value} -> {target.value}"
        )
