from PIL import Image
import pytest

from batch_ocr import ocr_service
from batch_ocr.errors import ExtractionError
from batch_ocr.ocr_service import TyphoonOCRService, load_pages


class _DummyMessage:
    def __init__(self, content):
        self.content = content


class _DummyChoice:
    def __init__(self, content):
        self.message = _DummyMessage(content)


class _DummyResponse:
    def __init__(self, content):
        self.choices = [_DummyChoice(content)]


class _DummyCompletions:
    def __init__(self, owner):
        self.owner = owner

    def create(self, **kwargs):
        self.owner.requests.append(kwargs)
        if self.owner.fail_on == len(self.owner.requests):
            raise RuntimeError("429 Too Many Requests")
        return _DummyResponse(f"page {len(self.owner.requests)}")


class _DummyChat:
    def __init__(self, owner):
        self.completions = _DummyCompletions(owner)


class _DummyOpenAI:
    def __init__(self, fail_on=None):
        self.requests = []
        self.kwargs = {}
        self.fail_on = fail_on
        self.chat = _DummyChat(self)

    def __call__(self, **kwargs):
        self.kwargs = kwargs
        return self


def _png(tmp_path, name="scan.png"):
    path = tmp_path / name
    Image.new("RGB", (8, 8), "white").save(path)
    return path


def test_single_image_is_one_page(tmp_path):
    client = _DummyOpenAI()
    svc = TyphoonOCRService(model="typhoon-ocr-preview", client_factory=client)

    text = svc.extract("sk-test", str(_png(tmp_path)))

    assert text == "page 1"
    assert client.kwargs["api_key"] == "sk-test"
    assert client.kwargs["base_url"] == "https://api.opentyphoon.ai/v1"
    request = client.requests[0]
    assert request["model"] == "typhoon-ocr-preview"
    image_part = request["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


def test_multi_page_document_pauses_between_pages(tmp_path, monkeypatch):
    pages = [Image.new("RGB", (8, 8)) for _ in range(3)]
    monkeypatch.setattr(ocr_service, "load_pages", lambda path, dpi=200: pages)
    sleeps = []
    svc = TyphoonOCRService(page_pause=3.0, client_factory=_DummyOpenAI(), sleep=sleeps.append)

    text = svc.extract("sk-test", str(tmp_path / "doc.pdf"))

    assert text == "page 1\n\npage 2\n\npage 3"
    assert sleeps == [3.0, 3.0]


def test_api_error_is_wrapped_with_page_number(tmp_path):
    svc = TyphoonOCRService(client_factory=_DummyOpenAI(fail_on=1))

    with pytest.raises(ExtractionError) as exc:
        svc.extract("sk-test", str(_png(tmp_path)))
    assert "page 1/1" in str(exc.value)
    assert "429" in str(exc.value)


def test_unsupported_suffix(tmp_path):
    doc = tmp_path / "notes.docx"
    doc.write_bytes(b"")
    with pytest.raises(ExtractionError):
        load_pages(str(doc))


def test_unreadable_file_is_an_extraction_error(tmp_path):
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")
    svc = TyphoonOCRService(client_factory=_DummyOpenAI())

    with pytest.raises(ExtractionError) as exc:
        svc.extract("sk-test", str(broken))
    assert "broken.png" in str(exc.value)
