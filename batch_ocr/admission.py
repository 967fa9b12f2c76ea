import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class AdmissionController:
    """
    Contrôle d'admission à double plafond, évalué à chaque tick:

    1. au plus `batch_size` nouveaux fichiers par tick;
    2. au plus `quota` admissions par fenêtre de `window` secondes.

    Quand le quota est atteint, le contrôleur attend la fin de la fenêtre
    (aucune admission pendant cette pause) puis repart d'une fenêtre neuve.
    Utilisé par une seule boucle d'admission: pas de verrou.
    """

    def __init__(
        self,
        batch_size: int = 2,
        quota: int = 20,
        window: float = 60.0,
        tick: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1 or quota < 1:
            raise ValueError("batch_size et quota doivent être >= 1")
        if window <= 0 or tick <= 0:
            raise ValueError("window et tick doivent être > 0")
        self.batch_size = batch_size
        self.quota = quota
        self.window = window
        self.tick = tick
        self._clock = clock
        self._sleep = sleep

        self.window_start: Optional[float] = None
        self.admitted_in_window = 0
        self._next_tick: Optional[float] = None
        # Horodatage de chaque admission, dans l'ordre.
        self.admissions: List[float] = []

    async def next_slots(self, pending: int) -> int:
        """Attend le prochain tick et retourne le nombre de fichiers à démarrer."""
        if pending <= 0:
            return 0

        await self._wait_tick()

        now = self._clock()
        if self.window_start is None or now - self.window_start >= self.window:
            self._reset_window(now)

        if self.admitted_in_window >= self.quota:
            elapsed = now - self.window_start
            if elapsed < self.window:
                pause = self.window - elapsed
                logger.info("Quota de %d atteint, pause de %.1fs", self.quota, pause)
                await self._sleep(pause)
            now = self._clock()
            self._reset_window(now)
            self._next_tick = now + self.tick

        # Jamais plus que ce qui reste du quota de la fenêtre.
        count = min(self.batch_size, pending, self.quota - self.admitted_in_window)
        self.admitted_in_window += count
        self.admissions.extend([now] * count)
        return count

    async def _wait_tick(self) -> None:
        now = self._clock()
        if self._next_tick is None:
            self._next_tick = now + self.tick
            return
        delay = self._next_tick - now
        if delay > 0:
            await self._sleep(delay)
        # Pas de rattrapage des ticks manqués: le suivant part de maintenant.
        self._next_tick = max(self._next_tick, self._clock()) + self.tick

    def _reset_window(self, now: float) -> None:
        self.window_start = now
        self.admitted_in_window = 0
