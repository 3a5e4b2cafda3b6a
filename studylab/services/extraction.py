import hashlib
import io
import re
from typing import Callable, Optional

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from studylab.errors import ExtractionError, ModelRequestError
from studylab.schemas import SourceDocument
from studylab.services.cache import cache
from studylab.services.llm import transcribe_audio
from studylab.services.logging import log_performance

logger = structlog.get_logger()

PDF_EXTENSIONS = {"pdf"}
AUDIO_EXTENSIONS = {"mp3", "mp4", "mpeg", "mpga", "m4a", "wav", "webm"}
MAX_AUDIO_BYTES = 25 * 1024 * 1024
MAX_PDF_BYTES = 100 * 1024 * 1024
TRANSCRIPTION_CACHE_TTL = 7 * 24 * 3600


def file_extension(file_name: str) -> str:
    return file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""


def validate_file(file_name: str, file_size: int) -> str:
    """Reject unsupported extensions and oversized uploads; returns the extension."""
    ext = file_extension(file_name)
    if ext not in PDF_EXTENSIONS and ext not in AUDIO_EXTENSIONS:
        raise ExtractionError(f"Unsupported file type: {ext or file_name}")
    max_size = MAX_AUDIO_BYTES if ext in AUDIO_EXTENSIONS else MAX_PDF_BYTES
    if file_size > max_size:
        raise ExtractionError(f"File size exceeds limit of {max_size // (1024 * 1024)}MB")
    return ext


# -------------------- CLEANING / NORMALIZATION --------------------

UNWANTED_INLINE = ["\u00ad", "\uf0b7", "\u200b", "\u200c", "\u200d", "\x00"]


def normalize_text(raw_text: str) -> str:
    for ch in UNWANTED_INLINE:
        raw_text = raw_text.replace(ch, "")
    raw_text = re.sub(r"-[ \t]*\n[ \t]*(?=[a-z])", "", raw_text)  # de-hyphenate across linebreaks
    raw_text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    raw_text = re.sub(r"[ \t]+\n", "\n", raw_text)
    raw_text = re.sub(r"\n{3,}", "\n\n", raw_text)
    return raw_text.strip()


# -------------------- PDF TEXT EXTRACTION --------------------

def extract_text_from_pdf(data: bytes, source_name: str = "document.pdf") -> SourceDocument:
    if data[:5] != b"%PDF-":
        raise ExtractionError("Invalid PDF header")
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = [page.extract_text() or "" for page in reader.pages]
        metadata = reader.metadata or {}
    except (PyPdfError, ValueError, KeyError, TypeError) as e:
        raise ExtractionError(f"Failed to extract text from PDF: {e}") from e

    info = {str(k).lstrip("/"): str(v) for k, v in dict(metadata).items()}
    info.update({"type": "pdf_extraction", "processor": "pypdf"})
    logger.info("pdf_extracted", source=source_name, pages=len(pages))
    return SourceDocument(
        raw_text=normalize_text("\n".join(pages)),
        source_name=source_name,
        type_info=info,
        num_pages=len(pages),
    )


# -------------------- AUDIO TRANSCRIPTION --------------------

def transcribe_with_cache(data: bytes, file_name: str, transcriber: Callable[[bytes, str], str]) -> str:
    key = "transcript:" + hashlib.sha256(data).hexdigest()
    return cache.remember(key, lambda: transcriber(data, file_name), expire=TRANSCRIPTION_CACHE_TTL)


def extract_text_from_audio(
    data: bytes,
    source_name: str,
    transcriber: Optional[Callable[[bytes, str], str]] = None,
) -> SourceDocument:
    ext = file_extension(source_name)
    if len(data) > MAX_AUDIO_BYTES:
        raise ExtractionError("Audio file size exceeds 25MB limit")
    try:
        text = transcribe_with_cache(data, source_name, transcriber or transcribe_audio)
    except ModelRequestError as e:
        raise ExtractionError(str(e)) from e
    return SourceDocument(
        raw_text=normalize_text(text),
        source_name=source_name,
        type_info={"type": "audio_transcription", "format": ext, "processor": "whisper-api"},
    )


@log_performance("extract_text")
def extract_text(
    data: bytes,
    file_name: str,
    transcriber: Optional[Callable[[bytes, str], str]] = None,
) -> SourceDocument:
    """Turn an uploaded PDF or audio buffer into a SourceDocument."""
    ext = validate_file(file_name, len(data))
    if ext in PDF_EXTENSIONS:
        document = extract_text_from_pdf(data, file_name)
    else:
        document = extract_text_from_audio(data, file_name, transcriber)
    if not document.raw_text:
        raise ExtractionError(f"No text could be extracted from {file_name}")
    return document
