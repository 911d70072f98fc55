from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Tuple

from fastapi import UploadFile

from .question_errors import DocumentTooSparseError, ExtractionFailedError, UnsupportedFormatError

_log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".txt")

PdfPathway = Tuple[str, Callable[[bytes], Any]]


def normalize_extension(value: str) -> str:
    ext = str(value or "").strip().lower()
    if not ext:
        return ""
    if "." in ext and not ext.startswith("."):
        ext = Path(ext).suffix.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    return ext


def _result_text(result: Any) -> str:
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, Mapping):
        return str(result.get("text") or "")
    text = getattr(result, "text", None)
    if text is None:
        raise TypeError(f"pdf parser result has no text field: {type(result).__name__}")
    return str(text)


@dataclass(frozen=True)
class PdfTextBackend:
    """Ordered PDF pathways, class-based first, then plain callables."""

    pathways: List[PdfPathway] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.pathways]

    def extract(self, data: bytes) -> str:
        if not self.pathways:
            raise ExtractionFailedError("Failed to parse PDF: PDF parser is not correctly initialized.")
        errors: List[str] = []
        for name, pathway in self.pathways:
            try:
                return _result_text(pathway(data))
            except Exception as exc:
                _log.warning("pdf pathway %s failed: %s", name, str(exc)[:200])
                errors.append(f"{name}: {str(exc)[:200]}")
        raise ExtractionFailedError(f"Failed to parse PDF: {'; '.join(errors)}")


def _pdfplumber_pathway(pdf_class: Any) -> Callable[[bytes], str]:
    def _extract(data: bytes) -> str:
        pages_text = []
        with pdf_class.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text() or ""
                if page_text:
                    pages_text.append(page_text)
        return "\n".join(pages_text)

    return _extract


def _pdfminer_pathway(extract_text: Callable[..., Any]) -> Callable[[bytes], Any]:
    def _extract(data: bytes) -> Any:
        return extract_text(io.BytesIO(data))

    return _extract


def build_pdf_backend() -> PdfTextBackend:
    pathways: List[PdfPathway] = []
    try:
        import pdfplumber  # type: ignore

        pdf_class = getattr(pdfplumber, "PDF", None)
        if pdf_class is not None and callable(getattr(pdf_class, "open", None)):
            pathways.append(("pdfplumber", _pdfplumber_pathway(pdf_class)))
    except Exception:
        _log.debug("pdfplumber unavailable", exc_info=True)
    try:
        from pdfminer.high_level import extract_text  # type: ignore

        if callable(extract_text):
            pathways.append(("pdfminer", _pdfminer_pathway(extract_text)))
    except Exception:
        _log.debug("pdfminer unavailable", exc_info=True)
    return PdfTextBackend(pathways=pathways)


_PDF_BACKEND: Optional[PdfTextBackend] = None


def resolve_pdf_backend() -> PdfTextBackend:
    global _PDF_BACKEND
    if _PDF_BACKEND is None:
        _PDF_BACKEND = build_pdf_backend()
        _log.info("pdf backend resolved: %s", ",".join(_PDF_BACKEND.names) or "none")
    return _PDF_BACKEND


def extract_docx_text(data: bytes) -> str:
    try:
        import docx  # type: ignore

        document = docx.Document(io.BytesIO(data))
    except Exception as exc:
        raise ExtractionFailedError(f"Failed to parse DOCX: {str(exc)[:200]}") from exc
    lines = [para.text for para in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text for cell in row.cells if cell.text]
            if cells:
                lines.append("\t".join(cells))
    return "\n".join(lines)


def extract_txt_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionFailedError("Failed to read TXT: file is not valid UTF-8.") from exc


def extract_document_text(
    data: bytes,
    extension: str,
    *,
    pdf_backend: Optional[PdfTextBackend] = None,
) -> str:
    ext = normalize_extension(extension)
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError()

    t0 = time.monotonic()
    if ext == ".pdf":
        text = (pdf_backend or resolve_pdf_backend()).extract(data)
    elif ext == ".docx":
        text = extract_docx_text(data)
    else:
        text = extract_txt_text(data)
    _log.info(
        "document.extract.done ext=%s chars=%d duration_ms=%d",
        ext,
        len(text),
        int((time.monotonic() - t0) * 1000),
    )
    return text


def ensure_document_density(text: str, *, min_chars: int = 50) -> str:
    if len(str(text or "").strip()) < min_chars:
        raise DocumentTooSparseError()
    return text


async def save_upload_file(
    upload: UploadFile,
    dest: Path,
    *,
    run_in_threadpool: Callable[[Callable[..., Any]], Any],
    chunk_size: int = 1024 * 1024,
) -> int:
    dest.parent.mkdir(parents=True, exist_ok=True)

    def _copy() -> int:
        total = 0
        try:
            upload.file.seek(0)
        except Exception:
            _log.debug("upload stream not seekable", exc_info=True)
        with dest.open("wb") as out:
            while True:
                chunk = upload.file.read(chunk_size)
                if not chunk:
                    break
                out.write(chunk)
                total += len(chunk)
        return total

    return await run_in_threadpool(_copy)


def remove_upload_file(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError:
        _log.warning("failed to remove upload %s", path, exc_info=True)
