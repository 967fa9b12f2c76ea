from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional


class ItemStatus(str, Enum):
    """Statut d'un fichier dans un batch (valeurs envoyées telles quelles à l'UI)."""

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


# Transitions autorisées, aucun retour en arrière.
ALLOWED_TRANSITIONS = {
    ItemStatus.WAITING: {ItemStatus.PROCESSING},
    ItemStatus.PROCESSING: {ItemStatus.COMPLETED, ItemStatus.FAILED},
    ItemStatus.COMPLETED: set(),
    ItemStatus.FAILED: set(),
}


@dataclass
class ProcessConfig:
    """Configuration de haut niveau pour exécuter un batch OCR."""
    out_root: Path
    api_key: Optional[str] = None
    base_url: str = "https://api.opentyphoon.ai/v1"
    model: str = "typhoon-ocr-preview"
    dpi: int = 200
    page_pause: float = 3.0       # pause entre deux pages d'un même PDF
    batch_size: int = 2           # admissions max par tick
    quota: int = 20               # admissions max par fenêtre
    quota_window: float = 60.0
    tick: float = 1.0
    item_timeout: Optional[float] = None
    api_timeout: int = 300


@dataclass
class FileProgress:
    file_path: str
    status: ItemStatus = ItemStatus.WAITING
    result: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class ProcessProgress:
    """
    Vue agrégée d'un batch: une entrée par fichier, dans l'ordre d'entrée.

    `completed` est stocké pour l'affichage mais doit toujours être égal au
    nombre d'entrées terminées (voir `count_terminal`).
    """
    files: List[FileProgress]
    current_task: str = ""
    completed: int = 0
    total: int = 0

    def count_terminal(self) -> int:
        return sum(1 for f in self.files if f.status.is_terminal)

    def copy(self) -> "ProcessProgress":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "current_task": self.current_task,
            "completed": self.completed,
            "total": self.total,
        }


ProgressCallback = Callable[[ProcessProgress], None]

