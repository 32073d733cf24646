import json
import re
import logging
import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import google.generativeai as genai
from groq import AsyncGroq
from openai import AsyncOpenAI

from studymap.core.config import settings
from studymap.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

# Signature shared by every stage that talks to a model.
CompleteFn = Callable[..., Awaitable[str]]

# ── Clients Initialization ────────────────────────────────────────────────────
logger.info(f"[INIT] AI_PROVIDER set to: {settings.AI_PROVIDER}")

groq_client: Optional[AsyncGroq] = None
if settings.GROQ_API_KEY:
    groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY, timeout=settings.LLM_TIMEOUT_SECONDS)
    logger.info("[INIT] ✓ Groq client initialized")
else:
    logger.warning("[INIT] ✗ Groq API key missing")

openai_client: Optional[AsyncOpenAI] = None
if settings.OPENAI_API_KEY:
    openai_client = AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )
    logger.info("[INIT] ✓ OpenAI client initialized")
else:
    logger.warning("[INIT] ✗ OpenAI API key missing")

if settings.GOOGLE_API_KEY:
    genai.configure(api_key=settings.GOOGLE_API_KEY, transport="rest")
    logger.info("[INIT] ✓ Gemini client initialized")
else:
    logger.warning("[INIT] ✗ Google API key missing")


# ── Helper: Robust JSON Recovery ──────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove one surrounding ```lang ... ``` wrapper, if present."""
    if not text:
        return text
    cleaned = re.sub(r"^```[a-zA-Z]*\s*\n?", "", text.strip())
    return re.sub(r"\n?\s*```$", "", cleaned).strip()


def _remove_trailing_commas(s: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", s)


def find_first_json_span(text: str) -> Optional[str]:
    """
    Return the first balanced {...} or [...] block in `text`, honouring
    string literals and escapes. None when no block closes.
    """
    start = None
    for i, ch in enumerate(text or ""):
        if ch in "{[":
            start = i
            break
    if start is None:
        return None

    stack: List[str] = []
    in_str = False
    esc = False
    for j in range(start, len(text)):
        ch = text[j]
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue

        if ch == '"':
            in_str = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack:
                return None
            top = stack.pop()
            if (top == "{") != (ch == "}"):
                return None
            if not stack:
                return text[start:j + 1]
    return None


def clean_and_parse_json(raw_text: str) -> Any:
    """
    Robust JSON extractor. Strips markdown code fences, preambles, and
    any text outside the JSON value, then parses the first balanced
    object/array. Raises ValueError when nothing parses.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Empty AI response received")

    cleaned = raw_text.strip()

    # Strategy 1: Remove ```json ... ``` wrapper
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    # Strategy 2: First balanced { ... } / [ ... ] block
    span = find_first_json_span(cleaned)
    if span is None:
        logger.error(f"No JSON found. Raw text (first 500 chars): {raw_text[:500]}")
        raise ValueError("AI response contains no JSON object")

    try:
        return json.loads(_remove_trailing_commas(span))
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed. Raw text (first 500 chars): {raw_text[:500]}")
        raise ValueError(f"AI returned invalid JSON: {str(e)}")


# ── Core: Call Groq ───────────────────────────────────────────────────────────

async def _call_groq(system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
    """Call Groq (Llama 3)."""
    if not groq_client:
        raise ValueError("Groq API Key missing")

    logger.info(f"[LLM] Calling Groq ({settings.GROQ_MODEL})...")
    completion = await groq_client.chat.completions.create(
        model=settings.GROQ_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        response_format={"type": "json_object"} if json_mode else None,
        temperature=0.2,
        max_tokens=max_tokens,
    )
    result = completion.choices[0].message.content
    logger.info("[LLM] ✓ Groq call succeeded")
    return result or ""


# ── Core: Call Gemini ─────────────────────────────────────────────────────────

async def _call_gemini(system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
    """Call Gemini; the SDK is blocking, so it runs in a worker thread."""
    if not settings.GOOGLE_API_KEY:
        raise ValueError("Google API Key missing")

    logger.info(f"[LLM] Calling Gemini ({settings.GEMINI_MODEL})...")
    config = {"temperature": 0.2, "max_output_tokens": max_tokens}
    if json_mode:
        config["response_mime_type"] = "application/json"

    model = genai.GenerativeModel(
        model_name=settings.GEMINI_MODEL,
        generation_config=config,
        system_instruction=system_prompt,
    )
    response = await asyncio.wait_for(
        asyncio.to_thread(model.generate_content, user_prompt),
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )
    logger.info("[LLM] ✓ Gemini call succeeded")
    return response.text


# ── Core: Call OpenAI ─────────────────────────────────────────────────────────

async def _call_openai(system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
    """Call OpenAI chat completions (or any compatible endpoint)."""
    if not openai_client:
        raise ValueError("OpenAI API Key missing")

    logger.info(f"[LLM] Calling OpenAI ({settings.OPENAI_MODEL})...")
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    completion = await openai_client.chat.completions.create(
        model=settings.OPENAI_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        max_completion_tokens=max_tokens,
        **kwargs,
    )
    result = completion.choices[0].message.content
    logger.info("[LLM] ✓ OpenAI call succeeded")
    return result or ""


_PROVIDERS = {
    "groq": ("Groq", _call_groq),
    "gemini": ("Gemini", _call_gemini),
    "openai": ("OpenAI", _call_openai),
}


def _call_order(primary: str) -> List[Tuple[str, Callable]]:
    provider = settings.AI_PROVIDER
    if provider != "hybrid":
        return [_PROVIDERS[provider]]
    order = [primary] + [name for name in ("groq", "gemini", "openai") if name != primary]
    return [_PROVIDERS[name] for name in order]


# ── Hybrid Call with Failover ─────────────────────────────────────────────────

async def complete(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int = 4000,
    json_mode: bool = True,
    primary: str = "groq",
) -> str:
    """
    Prompt in, text out. In hybrid mode tries `primary` first, then the
    remaining providers. Raises ProviderError once every provider failed.
    """
    last_error: Optional[Exception] = None
    for name, caller in _call_order(primary):
        try:
            text = await caller(system_prompt, user_prompt, max_tokens, json_mode)
            if text and text.strip():
                return text
            last_error = ValueError("empty response")
            logger.warning(f"[LLM] {name} returned an empty response. Trying next provider...")
        except Exception as e:
            last_error = e
            logger.warning(f"[LLM] {name} failed: {str(e)[:200]}. Trying next provider...")

    raise ProviderError(f"All AI providers failed. Last error: {str(last_error)}")
