"""
Document Reading Pipeline

Resolves source locators (http(s) URLs, file:// URLs or local paths), detects
their format and parses them into LangChain Documents ready for splitting.
"""

import io
import mimetypes
import re
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests
import structlog
from bs4 import BeautifulSoup
from langchain_core.documents import Document
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .config import ReaderConfig
from .errors import FetchError, ParseError

logger = structlog.get_logger(__name__)

TEXT_EXTENSIONS = {".txt", ".text", ".md", ".markdown", ".csv", ".json", ".xml", ".log", ".rst"}
HTML_EXTENSIONS = {".html", ".htm", ".xhtml"}
TEXT_CONTENT_TYPES = {"application/json", "application/xml", "application/x-yaml", "application/csv"}
HTML_CONTENT_TYPES = {"text/html", "application/xhtml+xml"}
REMOVED_HTML_TAGS = ["script", "style", "noscript", "template"]


class UrlDocumentReader:
    """Reads every document behind a single source locator."""

    def __init__(self,
                 source: str,
                 session: Optional[requests.Session] = None,
                 timeout: float = 30.0,
                 user_agent: str = "finance-assist/1.0",
                 max_content_length: int = 50 * 1024 * 1024):
        self.source = source
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_content_length = max_content_length

    def get(self) -> List[Document]:
        """
        Fetch and parse the bound source.

        Returns:
            One Document per logical unit (a PDF page, an HTML page, a text file)

        Raises:
            FetchError: The locator is malformed, missing or unreachable
            ParseError: The content format is unsupported or holds no text
        """
        data, content_type, encoding = self._fetch()
        if len(data) > self.max_content_length:
            raise FetchError(
                f"Content of {self.source} exceeds {self.max_content_length} bytes",
                source=self.source,
                status_code=413,
            )

        doc_format = detect_format(data, content_type, self.source)
        base_metadata = {"source": self.source, "content_type": content_type or "unknown"}

        if doc_format == "pdf":
            documents = self._parse_pdf(data, base_metadata)
        elif doc_format == "html":
            documents = self._parse_html(data, base_metadata)
        elif doc_format == "text":
            documents = self._parse_text(data, encoding, base_metadata)
        else:
            raise ParseError(
                f"Unsupported content type '{content_type or 'unknown'}' for {self.source}",
                source=self.source,
            )

        if not documents:
            raise ParseError(f"No extractable text in {self.source}", source=self.source)
        return documents

    def _fetch(self) -> Tuple[bytes, str, Optional[str]]:
        """Return raw bytes, normalized content type and encoding hint."""
        if not self.source or not self.source.strip():
            raise FetchError("Source locator must not be empty", source=self.source, status_code=400)

        parsed = urlparse(self.source)
        scheme = parsed.scheme.lower()

        if scheme in ("http", "https"):
            return self._fetch_http()
        if scheme == "file":
            return self._fetch_file(Path(url2pathname(parsed.path)))
        # Single letter schemes are Windows drive letters
        if scheme == "" or len(scheme) == 1:
            return self._fetch_file(Path(self.source))

        raise FetchError(f"Unsupported URL scheme '{scheme}' in {self.source}", source=self.source, status_code=400)

    def _fetch_http(self) -> Tuple[bytes, str, Optional[str]]:
        try:
            response = self.session.get(
                self.source,
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise FetchError(f"Timed out fetching {self.source}: {e}", source=self.source, status_code=504) from e
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {self.source}: {e}", source=self.source) from e

        content_type = _normalize_content_type(response.headers.get("Content-Type", ""))
        return response.content, content_type, response.encoding

    def _fetch_file(self, path: Path) -> Tuple[bytes, str, Optional[str]]:
        if not path.is_file():
            raise FetchError(f"Resource not found: {self.source}", source=self.source, status_code=400)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FetchError(f"Failed to read {self.source}: {e}", source=self.source) from e

        guessed, _ = mimetypes.guess_type(path.name)
        return data, _normalize_content_type(guessed or ""), None

    def _parse_pdf(self, data: bytes, base_metadata: Dict[str, Any]) -> List[Document]:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError) as e:
            raise ParseError(f"Failed to parse PDF {self.source}: {e}", source=self.source) from e

        documents = []
        for page_number, text in enumerate(pages, start=1):
            if not text.strip():
                continue
            metadata = {**base_metadata, "page": page_number, "total_pages": len(pages)}
            documents.append(_new_document(text, metadata))
        return documents

    def _parse_html(self, data: bytes, base_metadata: Dict[str, Any]) -> List[Document]:
        soup = BeautifulSoup(data, "html.parser")
        for tag in soup(REMOVED_HTML_TAGS):
            tag.decompose()

        title_tag = soup.find("title")
        title = title_tag.get_text().strip() if title_tag else ""

        lines = (line.strip() for line in soup.get_text(separator="\n").splitlines())
        text = "\n".join(line for line in lines if line)
        if not text:
            return []

        metadata = dict(base_metadata)
        if title:
            metadata["title"] = title
        return [_new_document(text, metadata)]

    def _parse_text(self, data: bytes, encoding: Optional[str], base_metadata: Dict[str, Any]) -> List[Document]:
        text = decode_text(data, encoding)
        if not text.strip():
            return []
        return [_new_document(text, dict(base_metadata))]


class DocumentService:
    """Reads documents for a batch of source locators."""

    def __init__(self,
                 reader_config: Optional[ReaderConfig] = None,
                 session: Optional[requests.Session] = None):
        self.config = reader_config or ReaderConfig()
        self.session = session or requests.Session()

    def reader_for(self, source: str) -> UrlDocumentReader:
        """Build a reader bound to one source."""
        return UrlDocumentReader(
            source,
            session=self.session,
            timeout=self.config.timeout,
            user_agent=self.config.user_agent,
            max_content_length=self.config.max_content_length,
        )

    def read(self, urls: List[str]) -> List[Document]:
        """
        Read all documents behind the given locators, in order.

        The first failing locator aborts the whole batch.

        Args:
            urls: Source locators (http(s) URLs, file:// URLs or local paths)

        Returns:
            Flattened list of parsed documents
        """
        start_time = time.time()
        documents: List[Document] = []

        for url in urls:
            try:
                docs = self.reader_for(url).get()
            except (FetchError, ParseError) as e:
                logger.error("Failed to read source", source=url, error_kind=e.kind, error=str(e))
                raise
            documents.extend(docs)
            logger.info("Source read", source=url, documents=len(docs))

        logger.info("Document batch read",
                    sources=len(urls),
                    documents=len(documents),
                    processing_time=round(time.time() - start_time, 2))
        return documents


def detect_format(data: bytes, content_type: str, source: str) -> Optional[str]:
    """Classify content as 'pdf', 'html' or 'text', or None when unsupported."""
    extension = Path(urlparse(source).path).suffix.lower()

    if data[:5] == b"%PDF-" or content_type == "application/pdf" or extension == ".pdf":
        return "pdf"
    if content_type in HTML_CONTENT_TYPES or extension in HTML_EXTENSIONS:
        return "html"
    if content_type.startswith("text/") or content_type in TEXT_CONTENT_TYPES or extension in TEXT_EXTENSIONS:
        return "text"

    if content_type in ("", "application/octet-stream"):
        head = data[:1024].lstrip().lower()
        if head.startswith(b"<!doctype html") or head.startswith(b"<html"):
            return "html"
        if _looks_like_text(data):
            return "text"
    return None


def decode_text(data: bytes, encoding: Optional[str] = None) -> str:
    """Decode bytes as UTF-8, then the hinted encoding, then UTF-8 with replacement."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    if encoding:
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            pass
    return data.decode("utf-8", errors="replace")


def _looks_like_text(data: bytes) -> bool:
    sample = data[:4096]
    if b"\x00" in sample:
        return False
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multibyte character cut at the sample boundary is still text
        return e.start >= len(sample) - 3
    return True


def _normalize_content_type(value: str) -> str:
    return re.split(r"[;,]", value, maxsplit=1)[0].strip().lower()


def _new_document(text: str, metadata: Dict[str, Any]) -> Document:
    return Document(page_content=text, metadata=metadata, id=str(uuid.uuid4()))
