"""
Text extraction for the audiobook studio.

EPUB files are read in spine (reading) order straight from the zip container.
PDF files use their embedded text layer; scanned PDFs without one are handed
to the multimodal model.
"""

import io
import logging
import posixpath
import re
import zipfile
from typing import List

from bs4 import BeautifulSoup
from pdfminer.high_level import extract_text as pdf_extract_text
from pdfminer.pdfparser import PDFSyntaxError

from ai_service import ai_service

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
SUPPORTED_EXTENSIONS = (".pdf", ".epub")
HTML_DOCUMENT_RE = re.compile(r"\.(xhtml|html|htm)$", re.I)


class DocumentError(ValueError):
    """The uploaded document is unsupported or unreadable."""


def _normalize(text: str) -> str:
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.splitlines()]
    # Collapse runs of blank lines into a single paragraph break
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def _epub_spine(zf: zipfile.ZipFile) -> List[str]:
    names = set(zf.namelist())
    try:
        container = BeautifulSoup(zf.read("META-INF/container.xml"), "html.parser")
    except KeyError:
        container = None

    rootfile = container.find("rootfile") if container else None
    opf_path = rootfile.get("full-path") if rootfile else None
    spine: List[str] = []

    if opf_path and opf_path in names:
        opf_dir = posixpath.dirname(opf_path)
        opf = BeautifulSoup(zf.read(opf_path), "html.parser")
        manifest = {
            item.get("id"): item.get("href")
            for item in opf.find_all("item")
            if item.get("id") and item.get("href")
        }
        for itemref in opf.find_all("itemref"):
            href = manifest.get(itemref.get("idref"))
            if not href:
                continue
            full = posixpath.normpath(posixpath.join(opf_dir, href))
            if HTML_DOCUMENT_RE.search(full) and full in names:
                spine.append(full)

    if not spine:
        spine = sorted(n for n in names if HTML_DOCUMENT_RE.search(n))
    return spine


def extract_epub_text(data: bytes) -> str:
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise DocumentError("The EPUB file is corrupted") from e

    with zf:
        parts = []
        for name in _epub_spine(zf):
            soup = BeautifulSoup(zf.read(name), "html.parser")
            for tag in soup(["script", "style"]):
                tag.decompose()
            body = soup.body or soup
            parts.append(body.get_text("\n"))
    return _normalize("\n\n".join(parts))


def extract_pdf_text(data: bytes) -> str:
    try:
        text = pdf_extract_text(io.BytesIO(data)) or ""
    except PDFSyntaxError as e:
        raise DocumentError("The PDF file is corrupted") from e

    text = _normalize(text)
    if text:
        return text

    logger.info("PDF has no text layer, falling back to the language model")
    return _normalize(ai_service.extract_pdf_text(data))


def extract_text(filename: str, data: bytes) -> str:
    """Return the readable text of a PDF or EPUB upload."""
    lowered = (filename or "").lower()
    if not lowered.endswith(SUPPORTED_EXTENSIONS):
        raise DocumentError("Please upload a PDF or EPUB file")
    if len(data) > MAX_UPLOAD_BYTES:
        raise DocumentError("File size must be less than 10MB")
    if not data:
        raise DocumentError("The uploaded file is empty")

    logger.info("Processing file: %s, size: %d bytes", filename, len(data))
    if lowered.endswith(".epub"):
        text = extract_epub_text(data)
    else:
        text = extract_pdf_text(data)
    logger.info("Extracted %d characters from %s", len(text), filename)
    return text
