import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .types import ProcessConfig


API_KEY_PATTERN = re.compile(r"^sk-[a-zA-Z0-9]{48}$")


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


def load_config(
    out_root: Optional[str] = None,
    api_key: Optional[str] = None,
    dpi: Optional[int] = None,
    item_timeout: Optional[float] = None,
) -> ProcessConfig:
    default_root = Path(tempfile.gettempdir()) / "batch_ocr"
    root = Path(out_root or os.getenv("OCR_OUT_ROOT") or default_root).expanduser().resolve()

    try:
        cfg = ProcessConfig(
            out_root=root,
            api_key=api_key or os.getenv("TYPHOON_API_KEY"),
            base_url=os.getenv("TYPHOON_BASE_URL", "https://api.opentyphoon.ai/v1"),
            model=os.getenv("TYPHOON_OCR_MODEL", "typhoon-ocr-preview"),
            dpi=int(dpi or int(os.getenv("VLM_DPI", "200"))),
            page_pause=float(os.getenv("OCR_PAGE_PAUSE", "3.0")),
            batch_size=int(os.getenv("OCR_BATCH_SIZE", "2")),
            quota=int(os.getenv("OCR_QUOTA", "20")),
            quota_window=float(os.getenv("OCR_QUOTA_WINDOW", "60")),
            tick=float(os.getenv("OCR_TICK", "1.0")),
            item_timeout=item_timeout if item_timeout is not None else _optional_float(os.getenv("OCR_ITEM_TIMEOUT")),
            api_timeout=int(os.getenv("API_TIMEOUT", "300")),
        )
    except ValueError as e:
        raise ConfigError(f"Variable d'environnement invalide: {e}") from e
    _check_ranges(cfg)
    return cfg


def _check_ranges(cfg: ProcessConfig) -> None:
    for name in ("batch_size", "quota", "dpi"):
        if getattr(cfg, name) < 1:
            raise ConfigError(f"{name} doit être >= 1 (reçu: {getattr(cfg, name)})")
    for name in ("quota_window", "tick", "api_timeout"):
        if getattr(cfg, name) <= 0:
            raise ConfigError(f"{name} doit être > 0 (reçu: {getattr(cfg, name)})")
    if cfg.page_pause < 0:
        raise ConfigError(f"page_pause doit être >= 0 (reçu: {cfg.page_pause})")
    if cfg.item_timeout is not None and cfg.item_timeout <= 0:
        raise ConfigError(f"item_timeout doit être > 0 (reçu: {cfg.item_timeout})")


def validate_api_key(api_key: Optional[str]) -> str:
    if not api_key:
        raise ConfigError("Clé API Typhoon manquante (--api-key ou TYPHOON_API_KEY)")
    if not API_KEY_PATTERN.match(api_key):
        raise ConfigError("Format de clé API invalide (attendu: sk- suivi de 48 caractères alphanumériques)")
    return api_key
