"""Source document text extraction.

Responsibilities:
- Dispatch on file extension to a format-specific extractor.
- Normalize every result to NFC Unicode text.
- Reject unsupported and DRM-wrapped formats with actionable messages.

Supported formats: `.txt`, `.pdf` (`pdftotext`, falling back to `pypdf`),
`.epub` (`ebooklib` + BeautifulSoup), and `.mobi`/`.azw`/`.azw3` through
Calibre's `ebook-convert`.
"""

from __future__ import annotations

from pathlib import Path
import re
import subprocess
import tempfile
import unicodedata
import warnings

import ebooklib
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from ebooklib import epub
from pypdf import PdfReader

from ..errors import UnsupportedFormatError
from ..runtime_tools import install_hint, resolve_executable


SUPPORTED_EXTENSIONS = (".txt", ".pdf", ".epub", ".mobi", ".azw", ".azw3")
_CONVERTIBLE_EXTENSIONS = frozenset({".mobi", ".azw", ".azw3"})
_DRM_EXTENSIONS = frozenset({".kfx"})


class TextExtractionError(RuntimeError):
    """Raised when a supported document cannot be read or converted."""


class TextExtractor:
    """Convert a source document into normalized Unicode text."""

    def __init__(self, timeout_seconds: float = 120.0) -> None:
        self.timeout_seconds = timeout_seconds

    def extract(self, path: Path) -> str:
        """Extract normalized text from `path`.

        Raises:
            UnsupportedFormatError: For unknown or DRM-wrapped extensions.
            TextExtractionError: When the file is missing or a converter fails.
        """

        extension = self.check_supported(path)
        if not path.is_file():
            raise TextExtractionError(f"Input document not found: {path}")

        if extension == ".txt":
            text = self._extract_plain_text(path)
        elif extension == ".pdf":
            text = self._extract_pdf(path)
        elif extension == ".epub":
            text = self._extract_epub(path)
        else:
            text = self._extract_with_ebook_convert(path)
        return unicodedata.normalize("NFC", text)

    @staticmethod
    def check_supported(path: Path) -> str:
        """Return the lower-cased extension of `path` or raise `UnsupportedFormatError`."""

        extension = path.suffix.lower()
        if extension in _DRM_EXTENSIONS:
            raise UnsupportedFormatError(
                "KFX format is not supported. Please convert to EPUB, PDF, MOBI, "
                "or AZW3 format first."
            )
        if extension not in SUPPORTED_EXTENSIONS:
            supported = ", ".join(SUPPORTED_EXTENSIONS)
            raise UnsupportedFormatError(
                f"Unsupported document format `{extension or path.name}`; supported: {supported}."
            )
        return extension

    def _extract_plain_text(self, path: Path) -> str:
        return path.read_bytes().decode("utf-8", errors="replace")

    def _extract_pdf(self, path: Path) -> str:
        command = [resolve_executable("pdftotext"), "-enc", "UTF-8", str(path), "-"]
        try:
            result = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError:
            return self._extract_pdf_with_pypdf(path)
        except subprocess.TimeoutExpired as exc:
            raise TextExtractionError(f"pdftotext timed out for {path}.") from exc

        if result.returncode != 0:
            details = result.stderr.strip() or "unknown error"
            raise TextExtractionError(f"pdftotext failed for {path}: {details}")
        return result.stdout.replace("\f", "\n").strip()

    def _extract_pdf_with_pypdf(self, path: Path) -> str:
        reader = PdfReader(str(path))
        pages = [(page.extract_text() or "").replace("\f", "\n").strip() for page in reader.pages]
        return "\n".join(pages).strip()

    def _extract_epub(self, path: Path) -> str:
        try:
            book = epub.read_epub(str(path))
        except Exception as exc:
            raise TextExtractionError(f"Could not open EPUB {path}: {exc}") from exc

        parts: list[str] = []
        for item in self._spine_documents(book):
            text = self._html_to_text(item.get_content())
            if text:
                parts.append(text)
        return "\n".join(parts)

    @staticmethod
    def _spine_documents(book: epub.EpubBook) -> list[epub.EpubItem]:
        """Return document items in reading order, falling back to manifest order."""

        items: list[epub.EpubItem] = []
        for item_id, _linear in book.spine:
            item = book.get_item_with_id(item_id)
            if item is not None and item.get_type() == ebooklib.ITEM_DOCUMENT:
                items.append(item)
        if items:
            return items
        return list(book.get_items_of_type(ebooklib.ITEM_DOCUMENT))

    @staticmethod
    def _html_to_text(html_content: bytes) -> str:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
            soup = BeautifulSoup(html_content, "html.parser")
        for element in soup(["script", "style"]):
            element.decompose()
        text = soup.get_text(separator="\n")
        text = re.sub(r"[ \t]+\n", "\n", text)
        return re.sub(r"\n{3,}", "\n\n", text).strip()

    def _extract_with_ebook_convert(self, path: Path) -> str:
        executable = resolve_executable("ebook-convert")
        with tempfile.TemporaryDirectory(prefix="audiotale-convert-") as scratch:
            output_path = Path(scratch) / "converted.txt"
            command = [
                executable,
                str(path),
                str(output_path),
                "--txt-output-encoding=utf-8",
            ]
            try:
                result = subprocess.run(
                    command,
                    check=False,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout_seconds,
                )
            except FileNotFoundError as exc:
                raise TextExtractionError(
                    f"The `ebook-convert` command is required for {path.suffix} files. "
                    f"{install_hint('ebook-convert')}"
                ) from exc
            except subprocess.TimeoutExpired as exc:
                raise TextExtractionError(f"ebook-convert timed out for {path}.") from exc

            if result.returncode != 0:
                details = result.stderr.strip() or result.stdout.strip() or "unknown error"
                raise TextExtractionError(f"ebook-convert failed for {path}: {details}")
            if not output_path.is_file():
                raise TextExtractionError(f"ebook-convert produced no output for {path}.")
            return output_path.read_bytes().decode("utf-8", errors="replace")
