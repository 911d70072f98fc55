import asyncio
import io
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from exam_paper.api.document_text_service import (
    PdfTextBackend,
    ensure_document_density,
    extract_document_text,
    normalize_extension,
    remove_upload_file,
    save_upload_file,
)
from exam_paper.api.question_errors import DocumentTooSparseError, ExtractionFailedError, UnsupportedFormatError


class _Upload:
    def __init__(self, content: bytes, filename: str = "notes.txt"):
        self.file = io.BytesIO(content)
        self.filename = filename


async def _inline_threadpool(fn, *args, **kwargs):
    return fn(*args, **kwargs)


class _TextResult:
    def __init__(self, text):
        self.text = text


class DocumentTextServiceTest(unittest.TestCase):
    def test_normalize_extension(self):
        self.assertEqual(normalize_extension("PDF"), ".pdf")
        self.assertEqual(normalize_extension(".Docx"), ".docx")
        self.assertEqual(normalize_extension("chapter 1.TXT"), ".txt")
        self.assertEqual(normalize_extension(""), "")

    def test_unsupported_extension_rejected_before_parsing(self):
        calls = []
        backend = PdfTextBackend(pathways=[("spy", lambda data: calls.append(data) or "x")])
        with self.assertRaises(UnsupportedFormatError) as ctx:
            extract_document_text(b"data", ".pptx", pdf_backend=backend)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(calls, [])

    def test_txt_decodes_utf8_with_bom(self):
        self.assertEqual(extract_document_text("\ufeffNewton's laws".encode("utf-8"), ".txt"), "Newton's laws")

    def test_txt_invalid_utf8_fails_extraction(self):
        with self.assertRaises(ExtractionFailedError):
            extract_document_text(b"\xff\xfe\xfa", ".txt")

    def test_pdf_backend_falls_through_pathways(self):
        def broken(data):
            raise RuntimeError("bad xref")

        backend = PdfTextBackend(pathways=[("broken", broken), ("object", lambda data: _TextResult("page text"))])
        self.assertEqual(extract_document_text(b"%PDF", ".pdf", pdf_backend=backend), "page text")

    def test_pdf_backend_accepts_mapping_and_string_results(self):
        self.assertEqual(PdfTextBackend(pathways=[("m", lambda d: {"text": "abc"})]).extract(b""), "abc")
        self.assertEqual(PdfTextBackend(pathways=[("s", lambda d: "xyz")]).extract(b""), "xyz")

    def test_pdf_backend_without_pathways_is_a_parser_error(self):
        with self.assertRaises(ExtractionFailedError) as ctx:
            PdfTextBackend().extract(b"%PDF")
        self.assertIn("not correctly initialized", ctx.exception.detail)

    def test_pdf_backend_all_pathways_failing(self):
        def broken(data):
            raise ValueError("no text layer")

        with self.assertRaises(ExtractionFailedError) as ctx:
            PdfTextBackend(pathways=[("a", broken), ("b", lambda d: object())]).extract(b"%PDF")
        self.assertIn("a: no text layer", ctx.exception.detail)
        self.assertIn("b:", ctx.exception.detail)

    def test_docx_garbage_fails_extraction(self):
        with self.assertRaises(ExtractionFailedError):
            extract_document_text(b"not a zip", ".docx")

    def test_density_boundary(self):
        with self.assertRaises(DocumentTooSparseError) as ctx:
            ensure_document_density("a" * 49)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ensure_document_density("a" * 50), "a" * 50)

    def test_density_ignores_surrounding_whitespace(self):
        with self.assertRaises(DocumentTooSparseError):
            ensure_document_density("   " + "a" * 49 + "\n\n")

    def test_save_and_remove_upload_file(self):
        with TemporaryDirectory() as td:
            dest = Path(td) / "nested" / "upload.txt"
            written = asyncio.run(
                save_upload_file(_Upload(b"hello world"), dest, run_in_threadpool=_inline_threadpool)
            )
            self.assertEqual(written, 11)
            self.assertEqual(dest.read_bytes(), b"hello world")
            remove_upload_file(dest)
            self.assertFalse(dest.exists())
            remove_upload_file(dest)
            remove_upload_file(None)


if __name__ == "__main__":
    unittest.main()
