import json

import pytest

from batch_ocr.cli import find_documents
from batch_ocr.errors import PersistenceError
from batch_ocr.progress import ProgressStore
from batch_ocr.report import REPORT_SEPARATOR, UNKNOWN_ERROR, build_report
from batch_ocr.storage import write_report, write_status
from batch_ocr.types import FileProgress, ItemStatus, ProcessProgress
from batch_ocr.writer import ResultWriter


def test_writer_uses_stem_and_suffix(tmp_path):
    writer = ResultWriter(tmp_path / "out")

    location = writer.write("bonjour", "/data/scans/facture 01.pdf")

    assert location.endswith("facture_01_ocr.md")
    assert (tmp_path / "out" / "facture_01_ocr.md").read_text(encoding="utf-8") == "bonjour"


def test_writer_never_overwrites_within_a_run(tmp_path):
    writer = ResultWriter(tmp_path)

    first = writer.write("un", "a/doc.png")
    second = writer.write("deux", "b/doc.png")

    assert first != second
    assert open(first, encoding="utf-8").read() == "un"
    assert open(second, encoding="utf-8").read() == "deux"


def test_writer_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    writer = ResultWriter(blocker)

    with pytest.raises(PersistenceError):
        writer.write("texte", "doc.pdf")


def test_status_and_report_files(tmp_path):
    store = ProgressStore(["a.pdf"])
    store.mark_processing(0)
    store.mark_failed(0, "timeout")

    status = write_status(tmp_path, store.snapshot())
    report = write_report(tmp_path, "timeout")

    data = json.loads(status.read_text(encoding="utf-8"))
    assert data["files"][0] == {"file_path": "a.pdf", "status": "error", "result": None, "error": "timeout"}
    assert data["completed"] == 1
    assert data["total"] == 1
    assert report.read_text(encoding="utf-8") == "timeout"


def test_report_segments_by_status():
    progress = ProcessProgress(
        files=[
            FileProgress("a.pdf", ItemStatus.COMPLETED, result="/tmp/a_ocr.md"),
            FileProgress("b.pdf", ItemStatus.FAILED, error="timeout"),
            FileProgress("c.pdf", ItemStatus.FAILED),
            FileProgress("d.pdf", ItemStatus.WAITING),
        ],
        completed=3,
        total=4,
    )

    assert build_report(progress).split(REPORT_SEPARATOR) == [
        "/tmp/a_ocr.md",
        "timeout",
        UNKNOWN_ERROR,
        "waiting",
    ]


def test_find_documents_filters_and_keeps_order(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.PDF").write_bytes(b"")
    (tmp_path / "a.png").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("x")
    single = tmp_path / "z.jpg"
    single.write_bytes(b"")

    docs = find_documents([str(single), str(tmp_path)])

    assert [d.name for d in docs] == ["z.jpg", "a.png", "b.PDF", "z.jpg"]


def test_second_run_into_same_directory_keeps_previous_results(tmp_path):
    first = ResultWriter(tmp_path).write("run 1", "doc.pdf")
    second = ResultWriter(tmp_path).write("run 2", "doc.pdf")

    assert first.endswith("doc_ocr.md")
    assert second != first
    assert open(first, encoding="utf-8").read() == "run 1"
    assert open(second, encoding="utf-8").read() == "run 2"
