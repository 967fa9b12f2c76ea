import json
import uuid
from pathlib import Path
from typing import Dict

from .types import ProcessProgress


def _safe_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in ("_", "-", ".") else "_" for c in name)


def ensure_dir(path: Path) -> Path:
    path = Path(path).expanduser().resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def unique_path(out_dir: Path, stem: str, suffix: str) -> Path:
    base = _safe_name(stem) or "document"
    candidate = out_dir / f"{base}{suffix}"
    if not candidate.exists():
        return candidate
    # fallback unique
    return out_dir / f"{base}_{uuid.uuid4().hex[:8]}{suffix}"


def write_json(path: Path, data: Dict) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def write_status(out_dir: Path, progress: ProcessProgress) -> Path:
    p = ensure_dir(out_dir) / "status.json"
    write_json(p, progress.to_dict())
    return p


def write_report(out_dir: Path, report: str) -> Path:
    p = ensure_dir(out_dir) / "report.txt"
    p.write_text(report, encoding="utf-8")
    return p
