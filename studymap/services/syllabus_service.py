import io
import logging
import asyncio
from typing import Any, List

import fitz  # PyMuPDF
from PIL import Image
import google.generativeai as genai
from pydantic import BaseModel, Field, ValidationError

from studymap.core.config import settings
from studymap.core.exceptions import ProviderError
from studymap.services import llm_service
from studymap.services.llm_service import clean_and_parse_json

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".heic")


class ChapterDraft(BaseModel):
    title: str = Field(..., min_length=1)
    topics: List[str] = Field(default_factory=list)


SYLLABUS_SYSTEM_PROMPT = (
    "You are a specialized AI for extracting educational syllabus information.\n"
    "Extract every chapter and its subtopics and return them as JSON.\n"
    "Output MUST be valid JSON matching this exact schema:\n"
    '{ "chapters": [ { "title": "string", "content": ["subtopic", "..."] } ] }\n'
    "Include all chapters and all of their subtopics, in the order they appear."
)


def parse_chapters(payload: Any) -> List[ChapterDraft]:
    """Accept `{"chapters": [...]}` or a bare list; `content` or `topics` for subtopics."""
    if isinstance(payload, dict):
        payload = payload.get("chapters")
    if not isinstance(payload, list):
        raise ValueError("Syllabus response has no chapter list")

    chapters = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        topics = item.get("content") or item.get("topics") or []
        try:
            chapters.append(ChapterDraft(
                title=str(item.get("title", "")).strip(),
                topics=[str(t).strip() for t in topics if str(t).strip()],
            ))
        except ValidationError:
            logger.warning(f"[SYLLABUS] Skipping chapter without a title: {item}")
    if not chapters:
        raise ValueError("No chapters found in syllabus")
    return chapters


async def extract_chapters(file_content: bytes, filename: str) -> List[ChapterDraft]:
    """
    Syllabus file → chapters.
    Images go to Gemini Vision; PDFs are read with PyMuPDF and the text is
    structured by the regular LLM call.
    """
    filename = (filename or "").lower()

    # ── Validate file size ────────────────────────────
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(file_content) > max_bytes:
        raise ValueError(f"File exceeds {settings.MAX_FILE_SIZE_MB}MB limit.")

    if len(file_content) == 0:
        raise ValueError("File is empty.")

    if filename.endswith(".pdf"):
        text = await _extract_from_pdf(file_content)
        try:
            raw = await llm_service.complete(
                SYLLABUS_SYSTEM_PROMPT,
                f"Extract the chapters and subtopics from this syllabus:\n\n{text}",
                max_tokens=3000,
                json_mode=True,
            )
        except ProviderError as e:
            raise ValueError(f"Syllabus extraction failed: {e}")
    elif filename.endswith(IMAGE_EXTENSIONS):
        raw = await _extract_from_image(file_content)
    else:
        raise ValueError("Unsupported format. Use PDF, PNG, JPG, JPEG, WEBP, or HEIC.")

    chapters = parse_chapters(clean_and_parse_json(raw))
    logger.info(f"[SYLLABUS] ✓ {len(chapters)} chapters extracted from {filename}")
    return chapters


async def _extract_from_pdf(content: bytes) -> str:
    """
    Extract text from PDF using PyMuPDF (fitz).
    Runs in a thread pool to avoid blocking the async event loop.
    """
    def _process_pdf(data: bytes) -> str:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.page_count == 0:
                    raise ValueError("PDF has no pages.")

                if doc.page_count > 50:
                    raise ValueError("PDF too large for a syllabus (>50 pages).")

                text_blocks = [page.get_text("text") for page in doc]
                text = "\n\n".join(block for block in text_blocks if block.strip())
                if not text:
                    raise ValueError("No text content found in PDF.")
                return text
        except ValueError:
            raise
        except Exception as e:
            raise ValueError(f"PDF extraction failed: {str(e)}")

    return await asyncio.to_thread(_process_pdf, content)


async def _extract_from_image(content: bytes) -> str:
    """Ask Gemini Vision for the syllabus structure as JSON text."""
    if not settings.GOOGLE_API_KEY:
        raise ValueError("Image syllabus extraction needs GOOGLE_API_KEY.")

    try:
        image = Image.open(io.BytesIO(content))
        image.load()
    except Exception as e:
        raise ValueError(f"Could not read image: {str(e)}")

    w, h = image.size
    if w < 50 or h < 50:
        raise ValueError("Image too small to contain readable text.")

    model = genai.GenerativeModel(
        settings.GEMINI_VISION_MODEL,
        generation_config={"temperature": 0, "response_mime_type": "application/json"},
    )
    try:
        response = await asyncio.wait_for(
            asyncio.to_thread(model.generate_content, [SYLLABUS_SYSTEM_PROMPT, image]),
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )
        return response.text
    except Exception as e:
        raise ValueError(f"Image syllabus extraction failed: {str(e)}")
