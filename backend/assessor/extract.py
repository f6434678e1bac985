"""Turn a configured document (PDF or HTML page) into plain source text."""
from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple
from urllib.parse import unquote, urlsplit

import lxml.html
import pdfplumber
from lxml import etree
from readability import Document
from readability.readability import Unparseable

from .errors import AllSourcesFailed, AssessmentError, ExtractionEmpty, ExtractionInsufficient
from .models import DocumentReference, ExtractedText
from .sources import SourceFetcher


logger = logging.getLogger(__name__)

_NO_TITLE = "[no-title]"


def _filename(url: str) -> str:
	try:
		path = urlsplit(url).path
	except ValueError:
		return ""
	return unquote(path.rstrip("/").rsplit("/", 1)[-1])


def _is_pdf(content_type: str, url: str) -> bool:
	if "application/pdf" in content_type.lower():
		return True
	try:
		return urlsplit(url).path.lower().endswith(".pdf")
	except ValueError:
		return url.lower().endswith(".pdf")


def _pdf_page_texts(data: bytes) -> List[str]:
	with pdfplumber.open(io.BytesIO(data)) as pdf:
		return [page.extract_text() or "" for page in pdf.pages]


def _readable_text(html: str, url: str) -> Tuple[str, str]:
	"""Return ``(title, text)`` of the main content block; empty text when none is found."""
	doc = Document(html, url=url)
	summary = doc.summary(html_partial=True)
	title = doc.title()
	if title == _NO_TITLE:
		title = ""
	if not summary or not summary.strip():
		return title, ""
	body = lxml.html.fromstring(summary).text_content()
	lines = (" ".join(line.split()) for line in body.splitlines())
	return title, "\n".join(line for line in lines if line)


@dataclass
class MultiExtraction:
	texts: Dict[str, ExtractedText] = field(default_factory=dict)
	failures: Dict[str, AssessmentError] = field(default_factory=dict)

	@property
	def title(self) -> str:
		return " + ".join(t.title for t in self.texts.values())


class TextExtractor:
	def __init__(self, fetcher: SourceFetcher, *, min_chars: int = 200) -> None:
		self.fetcher = fetcher
		self.min_chars = min_chars

	async def extract(self, ref: DocumentReference) -> ExtractedText:
		response = await self.fetcher.fetch(ref.url)
		content_type = response.headers.get("content-type", "")

		if _is_pdf(content_type, ref.url):
			title, text = await self._from_pdf(ref, response.content)
		else:
			title, text = await self._from_html(ref, response.text)

		if len(text) < self.min_chars:
			raise ExtractionInsufficient(
				f"Extracted text from {ref.url} is too short ({len(text)} < {self.min_chars} characters)"
			)
		logger.info("extracted %s (%s): %d chars", ref.key, title, len(text))
		return ExtractedText(title=title, text=text, key=ref.key)

	async def _from_pdf(self, ref: DocumentReference, data: bytes) -> Tuple[str, str]:
		try:
			pages = await asyncio.to_thread(_pdf_page_texts, data)
		except Exception as exc:
			raise ExtractionEmpty(f"Could not read PDF from {ref.url}", cause=exc) from exc
		text = "\n".join(pages).replace("\r", "").strip()
		if not text:
			raise ExtractionEmpty(f"No text could be extracted from PDF {ref.url}")
		return _filename(ref.url) or "PDF document", text

	async def _from_html(self, ref: DocumentReference, html: str) -> Tuple[str, str]:
		try:
			title, text = await asyncio.to_thread(_readable_text, html, ref.url)
		except (Unparseable, etree.ParserError) as exc:
			raise ExtractionEmpty(f"No readable content in {ref.url}", cause=exc) from exc
		if not text.strip():
			raise ExtractionEmpty(f"No readable content in {ref.url}")
		return title or _filename(ref.url) or "Document", text.strip()

	async def extract_many(self, refs: Sequence[DocumentReference]) -> MultiExtraction:
		outcomes = await asyncio.gather(*(self.extract(ref) for ref in refs), return_exceptions=True)
		result = MultiExtraction()
		for ref, outcome in zip(refs, outcomes):
			if isinstance(outcome, AssessmentError):
				logger.warning("extraction failed for %s: %s", ref.key, outcome.message)
				result.failures[ref.key] = outcome
			elif isinstance(outcome, BaseException):
				raise outcome
			else:
				result.texts[ref.key] = outcome

		if not result.texts:
			first = next(iter(result.failures.values()), None)
			raise AllSourcesFailed("Could not extract text from any source", cause=first)
		return result


__all__ = ["MultiExtraction", "TextExtractor"]
