import base64
import io
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

from openai import OpenAI
from pdf2image import convert_from_path
from PIL import Image

from .errors import ExtractionError
from .types import ProcessConfig


logger = logging.getLogger(__name__)

SUPPORTED_EXTS = {".pdf", ".jpg", ".jpeg", ".png"}


class OCRService:
    """Collaborateur d'extraction: appel bloquant, potentiellement long."""

    def extract(self, api_key: str, file_path: str) -> str:
        raise NotImplementedError


def _ocr_instructions() -> str:
    return (
        "Extract all text from the image.\n"
        "Instructions:\n"
        "- Only return the clean Markdown.\n"
        "- Do not include any explanation or extra text.\n"
        "- You must include all information on the page.\n"
        "Formatting Rules:\n"
        "- Tables: Render tables using <table>...</table> in clean HTML format.\n"
        "- Equations: Render equations using LaTeX syntax with inline ($...$) and block ($$...$$).\n"
        "- Images/Charts/Diagrams: Wrap any clearly defined visual areas "
        "(e.g. charts, diagrams, pictures) in <figure>...</figure>.\n"
        "- Page Numbers: Wrap page numbers in <page_number>...</page_number>.\n"
        "- Checkboxes: Use ☐ for unchecked and ☑ for checked boxes."
    )


def _image_to_png_bytes(img: Image.Image) -> bytes:
    with io.BytesIO() as buf:
        img.save(buf, format="PNG")
        return buf.getvalue()


def load_pages(file_path: str, dpi: int = 200) -> List[Image.Image]:
    """
    Charge un document sous forme de pages image.

    - PDF : conversion via pdf2image (chaque page → image).
    - JPG/PNG : considéré comme un document 1 page.
    """
    path = Path(file_path).expanduser().resolve()
    suffix = path.suffix.lower()

    if suffix == ".pdf":
        return convert_from_path(str(path), dpi=dpi)
    if suffix in {".jpg", ".jpeg", ".png"}:
        with Image.open(str(path)) as img:
            return [img.copy()]
    raise ExtractionError(f"Type de fichier non supporté pour l'OCR: {suffix or path.name}")


class TyphoonOCRService(OCRService):
    """
    OCR via un modèle vision servi derrière une API compatible OpenAI
    (Typhoon OCR par défaut). Une requête par page, avec une pause fixe
    entre deux pages pour respecter la limite de débit côté API.
    """

    def __init__(
        self,
        base_url: str = "https://api.opentyphoon.ai/v1",
        model: str = "typhoon-ocr-preview",
        dpi: int = 200,
        page_pause: float = 3.0,
        timeout: int = 300,
        client_factory: Optional[Callable[..., OpenAI]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url
        self.model = model
        self.dpi = dpi
        self.page_pause = page_pause
        self.timeout = timeout
        self._client_factory = client_factory or OpenAI
        self._sleep = sleep

    @classmethod
    def from_config(cls, cfg: ProcessConfig) -> "TyphoonOCRService":
        return cls(
            base_url=cfg.base_url,
            model=cfg.model,
            dpi=cfg.dpi,
            page_pause=cfg.page_pause,
            timeout=cfg.api_timeout,
        )

    def extract(self, api_key: str, file_path: str) -> str:
        try:
            pages = load_pages(file_path, dpi=self.dpi)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Impossible de lire {Path(file_path).name}: {e}") from e

        client = self._client_factory(api_key=api_key, base_url=self.base_url, timeout=self.timeout)
        page_texts: List[str] = []
        for idx, page_img in enumerate(pages, start=1):
            if idx > 1 and self.page_pause > 0:
                self._sleep(self.page_pause)
            try:
                text = self._page_to_text(client, _image_to_png_bytes(page_img))
            except Exception as e:
                raise ExtractionError(f"OCR échoué page {idx}/{len(pages)}: {e}") from e
            logger.debug("OCR %s page %d/%d: %d caractères", file_path, idx, len(pages), len(text))
            page_texts.append(text)

        return "\n\n".join(page_texts)

    def _page_to_text(self, client: OpenAI, image_bytes: bytes) -> str:
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        data_url = f"data:image/png;base64,{b64}"

        resp = client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": _ocr_instructions()},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
            max_tokens=16384,
            temperature=0.1,
            top_p=0.6,
        )
        return resp.choices[0].message.content or ""
