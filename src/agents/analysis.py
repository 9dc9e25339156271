"""
Review Analysis Agent.

Classifies review text into sentiment, themes and key phrases using an LLM
with a strict JSON contract. Repairs and validates malformed model output and
falls back to a rating-derived result, so analysis never fails for a review.
"""

import asyncio
import json
import logging
import math
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import config.settings as settings
from src.models.analysis import (
    AnalysisOutcome,
    AnalysisRequest,
    MalformedResponse,
    ParsedAnalysis,
    ParseOutcome,
    ReviewAnalysisResult,
    SentimentCategory,
)
from src.utils.llm import ChatModel

logger = logging.getLogger(__name__)


# LLM Prompts
STANDARD_SYSTEM_PROMPT = (
    "You are a review analyzer. You must respond with ONLY valid JSON. "
    "No explanations, no markdown, no extra text. Just pure JSON."
)

FAST_SYSTEM_PROMPT = "Return only valid JSON. No explanations."


def _construct_standard_prompt(text: str, rating: Optional[int]) -> str:
    """Verbose prompt with explicit field constraints."""
    rating_line = f"Rating: {rating}/5 stars\n" if rating else ""
    return f"""Analyze this review and respond with ONLY a valid JSON object. No additional text before or after.

Review: "{text}"
{rating_line}
Return this exact JSON structure:
{{
  "primary_category": "positive|negative|neutral",
  "primary_confidence": 0.95,
  "secondary_categories": ["category1", "category2"],
  "themes": ["theme1", "theme2"],
  "sentiment_score": 0.8,
  "key_phrases": ["phrase1", "phrase2"],
  "summary": "Brief summary here"
}}

Rules:
- primary_category must be exactly "positive", "negative", or "neutral"
- primary_confidence must be a number between 0 and 1
- sentiment_score must be a number between -1 and 1
- At most 5 items in each array, and all arrays must contain strings
- summary must be at most 200 characters
- Use double quotes only
- No trailing commas
- Return ONLY the JSON object"""


def _construct_fast_prompt(text: str, rating: Optional[int]) -> str:
    """Terse prompt for the throughput-optimized mode, same schema."""
    return f"""Analyze: "{text}"
Rating: {rating or 'N/A'}/5

JSON only:
{{
  "primary_category": "positive|negative|neutral",
  "primary_confidence": 0.9,
  "secondary_categories": ["service"],
  "themes": ["experience"],
  "sentiment_score": 0.5,
  "key_phrases": ["good"],
  "summary": "Brief summary"
}}"""


class AnalysisMode(str, Enum):
    STANDARD = "standard"
    FAST = "fast"


@dataclass(frozen=True)
class ModeProfile:
    """Operating point for one analysis mode."""
    system_prompt: str
    build_prompt: Callable[[str, Optional[int]], str]
    temperature: float
    max_tokens: int
    concurrency: int
    window_delay: float


def default_profiles() -> dict:
    return {
        AnalysisMode.STANDARD: ModeProfile(
            system_prompt=STANDARD_SYSTEM_PROMPT,
            build_prompt=_construct_standard_prompt,
            temperature=settings.STANDARD_TEMPERATURE,
            max_tokens=settings.STANDARD_MAX_TOKENS,
            concurrency=settings.STANDARD_CONCURRENCY,
            window_delay=settings.STANDARD_WINDOW_DELAY_SECONDS,
        ),
        AnalysisMode.FAST: ModeProfile(
            system_prompt=FAST_SYSTEM_PROMPT,
            build_prompt=_construct_fast_prompt,
            temperature=settings.FAST_TEMPERATURE,
            max_tokens=settings.FAST_MAX_TOKENS,
            concurrency=settings.FAST_CONCURRENCY,
            window_delay=settings.FAST_WINDOW_DELAY_SECONDS,
        ),
    }


_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_SMART_QUOTES = str.maketrans({
    "“": '"', "”": '"', "„": '"', "″": '"',
    "‘": "'", "’": "'", "‚": "'", "′": "'",
})
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_CATEGORY_FIELD = re.compile(r'"primary_category"\s*:\s*"(positive|negative|neutral)"', re.IGNORECASE)
_CONFIDENCE_FIELD = re.compile(r'"primary_confidence"\s*:\s*(-?[\d.]+)')
_SENTIMENT_FIELD = re.compile(r'"sentiment_score"\s*:\s*(-?[\d.]+)')


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def clean_json_response(content: str) -> str:
    """
    Repair common formatting problems in model output.

    Strips code fences, keeps the text between the first '{' and the last '}',
    normalizes quote characters and drops trailing commas. Text that is
    already valid JSON after trimming is returned without further repair.
    """
    cleaned = _CODE_FENCE.sub("", content)

    first_brace = cleaned.find("{")
    if first_brace > 0:
        cleaned = cleaned[first_brace:]
    last_brace = cleaned.rfind("}")
    if 0 <= last_brace < len(cleaned) - 1:
        cleaned = cleaned[:last_brace + 1]

    if _is_json(cleaned):
        return cleaned.strip()

    cleaned = cleaned.translate(_SMART_QUOTES)
    # Single-quoted JSON only; apostrophes inside double-quoted strings stay
    if '"' not in cleaned:
        cleaned = cleaned.replace("'", '"')
    cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)

    return " ".join(cleaned.split())


def parse_response(cleaned: str) -> ParseOutcome:
    """Strict parse of repaired output into a tagged result."""
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return MalformedResponse(raw_text=cleaned)

    if not isinstance(data, dict):
        return MalformedResponse(raw_text=cleaned)
    return ParsedAnalysis(data=data)


def extract_fields(raw_text: str, review_text: str) -> dict:
    """
    Regex extraction for output that is not valid JSON.

    Only primary_category, primary_confidence and sentiment_score are
    recovered; everything else gets generic placeholders.
    """
    category = _CATEGORY_FIELD.search(raw_text)
    confidence = _CONFIDENCE_FIELD.search(raw_text)
    sentiment = _SENTIMENT_FIELD.search(raw_text)

    return {
        "primary_category": category.group(1).lower() if category else None,
        "primary_confidence": confidence.group(1) if confidence else 0.5,
        "secondary_categories": ["general"],
        "themes": ["review analysis"],
        "sentiment_score": sentiment.group(1) if sentiment else 0.0,
        "key_phrases": ["analysis"],
        "summary": review_text[:100] + "...",
    }


def infer_category_from_rating(rating: Optional[int]) -> SentimentCategory:
    if not rating:
        return SentimentCategory.NEUTRAL
    if rating >= 4:
        return SentimentCategory.POSITIVE
    if rating <= 2:
        return SentimentCategory.NEGATIVE
    return SentimentCategory.NEUTRAL


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _string_list(value: Any, default: List[str], limit: int, unique: bool) -> List[str]:
    if not isinstance(value, list):
        return list(default)

    items = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            continue
        item = item.strip()
        if unique and item in items:
            continue
        items.append(item)
    return items[:limit]


def validate_result(data: dict, rating: Optional[int]) -> ReviewAnalysisResult:
    """
    Coerce an arbitrary dict into an in-domain ReviewAnalysisResult.

    Unknown categories are replaced by a rating-derived one, numbers are
    clamped, arrays keep only strings (max 5), summary is cut to 200 chars.
    """
    limit = settings.MAX_LIST_ITEMS

    raw_category = data.get("primary_category")
    if isinstance(raw_category, str) and raw_category.strip().lower() in {c.value for c in SentimentCategory}:
        category = SentimentCategory(raw_category.strip().lower())
    else:
        category = infer_category_from_rating(rating)

    confidence = _clamp(_as_float(data.get("primary_confidence"), 0.5), 0.0, 1.0)
    sentiment = _clamp(_as_float(data.get("sentiment_score"), 0.0), -1.0, 1.0)

    secondary = _string_list(data.get("secondary_categories"), ["general"], limit, unique=True)
    themes = _string_list(data.get("themes"), ["general feedback"], limit, unique=True)
    key_phrases = _string_list(data.get("key_phrases"), ["review"], limit, unique=False)

    summary = data.get("summary")
    if isinstance(summary, str) and summary.strip():
        summary = summary.strip()[:settings.MAX_SUMMARY_CHARS]
    else:
        topic = themes[0] if themes else "service"
        summary = f"Review about {topic} with {category.value} sentiment"

    return ReviewAnalysisResult(
        primary_category=category,
        primary_confidence=confidence,
        secondary_categories=secondary,
        themes=themes,
        sentiment_score=sentiment,
        key_phrases=key_phrases,
        summary=summary,
    )


def fallback_analysis(text: str, rating: Optional[int]) -> ReviewAnalysisResult:
    """Deterministic rating-derived result used when the model fails."""
    category = infer_category_from_rating(rating)
    sentiment = _clamp((rating - 3) / 2, -1.0, 1.0) if rating else 0.0
    opening = " ".join((text or "").split()[:3]) or "review"

    return ReviewAnalysisResult(
        primary_category=category,
        primary_confidence=0.6,
        secondary_categories=["general"],
        themes=["customer experience"],
        sentiment_score=sentiment,
        key_phrases=[opening],
        summary=f"Customer review expressing {category.value} sentiment about the service",
    )


WindowCallback = Callable[[List[AnalysisOutcome]], Awaitable[None]]


class ReviewAnalysisAgent:
    """
    Turns review text into ReviewAnalysisResult records.

    Per review:
    1. Build mode-specific prompt
    2. Call the LLM (bounded timeout, retries on API errors)
    3. Repair -> strict parse -> regex extraction on malformed output
    4. Validate and clamp every field

    Batches run in fixed concurrent windows with a pacing delay between them.
    """

    def __init__(
        self,
        chat_model: ChatModel,
        timeout_seconds: float = settings.LLM_TIMEOUT_SECONDS,
        max_retries: int = settings.LLM_MAX_RETRIES,
        profiles: Optional[dict] = None
    ):
        """
        Initialize analysis agent.

        Args:
            chat_model: LLM used for classification
            timeout_seconds: Per-call timeout
            max_retries: Attempts per review on API errors
            profiles: Mode -> ModeProfile overrides (defaults from settings)
        """
        self.chat_model = chat_model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.profiles = profiles or default_profiles()

        logger.info(
            f"Initialized ReviewAnalysisAgent with model={chat_model.model_name}, "
            f"timeout={timeout_seconds}s, retries={self.max_retries}"
        )

    @property
    def model_name(self) -> str:
        return self.chat_model.model_name

    def profile(self, mode: AnalysisMode) -> ModeProfile:
        return self.profiles[AnalysisMode(mode)]

    async def analyze(
        self,
        text: str,
        rating: Optional[int] = None,
        mode: AnalysisMode = AnalysisMode.STANDARD
    ) -> ReviewAnalysisResult:
        """
        Analyze a single review. Never raises.

        Args:
            text: Review text
            rating: Optional 1-5 star rating
            mode: standard or fast prompt variant

        Returns:
            Validated ReviewAnalysisResult (fallback result on any failure)
        """
        result, _ = await self._analyze_with_flag(text, rating, mode)
        return result

    async def _analyze_with_flag(self, text, rating, mode):
        try:
            if not text or not text.strip():
                logger.debug("Empty review text, using fallback analysis")
                return fallback_analysis(text, rating), True

            profile = self.profile(mode)
            content = await self._call_model(profile, text, rating)
            if content is None:
                return fallback_analysis(text, rating), True

            outcome = parse_response(clean_json_response(content))
            if isinstance(outcome, MalformedResponse):
                logger.warning("Model returned malformed JSON, extracting fields by pattern")
                data = extract_fields(outcome.raw_text, text)
            else:
                data = outcome.data

            return validate_result(data, rating), False

        except Exception as e:
            logger.error(f"Analysis failed, using fallback: {e}")
            return fallback_analysis(text, rating), True

    async def _call_model(self, profile: ModeProfile, text: str, rating: Optional[int]) -> Optional[str]:
        """Call the LLM with retries. Returns None when every attempt failed."""
        prompt = profile.build_prompt(text, rating)

        for attempt in range(self.max_retries):
            try:
                return await asyncio.wait_for(
                    self.chat_model.complete(
                        system_instruction=profile.system_prompt,
                        prompt=prompt,
                        temperature=profile.temperature,
                        max_tokens=profile.max_tokens,
                    ),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.error(f"LLM call timed out after {self.timeout_seconds}s (attempt {attempt + 1})")
            except Exception as e:
                logger.error(f"LLM API error (attempt {attempt + 1}): {e}")

        logger.warning("Max retries reached, returning fallback analysis")
        return None

    async def _analyze_request(self, request: AnalysisRequest, mode: AnalysisMode) -> AnalysisOutcome:
        started = time.monotonic()
        result, used_fallback = await self._analyze_with_flag(request.text, request.rating, mode)
        return AnalysisOutcome(
            id=request.id,
            result=result,
            processing_time=round(time.monotonic() - started, 3),
            used_fallback=used_fallback,
        )

    async def analyze_batch(
        self,
        reviews: Sequence[AnalysisRequest],
        concurrency: Optional[int] = None,
        mode: AnalysisMode = AnalysisMode.STANDARD,
        on_window: Optional[WindowCallback] = None
    ) -> List[AnalysisOutcome]:
        """
        Analyze reviews in fixed-size concurrent windows.

        Window N+1 starts only after every request in window N resolved.
        A failing request degrades to the fallback result for its id only.

        Args:
            reviews: Requests with id, text and optional rating
            concurrency: Window size (defaults to the mode's concurrency)
            mode: standard or fast operating point
            on_window: Awaited with each window's outcomes as it completes

        Returns:
            Exactly one AnalysisOutcome per input id
        """
        mode = AnalysisMode(mode)
        profile = self.profile(mode)
        window_size = max(1, concurrency or profile.concurrency)
        total_windows = math.ceil(len(reviews) / window_size) if reviews else 0

        outcomes: List[AnalysisOutcome] = []
        fallbacks = 0

        for index, start in enumerate(range(0, len(reviews), window_size), 1):
            window = list(reviews[start:start + window_size])
            logger.info(f"Processing window {index}/{total_windows} ({len(window)} reviews, mode={mode.value})")

            results = await asyncio.gather(
                *(self._analyze_request(request, mode) for request in window),
                return_exceptions=True
            )

            window_outcomes = []
            for request, result in zip(window, results):
                if isinstance(result, BaseException):
                    logger.error(f"Error analyzing review {request.id}: {result}")
                    result = AnalysisOutcome(
                        id=request.id,
                        result=fallback_analysis(request.text, request.rating),
                        used_fallback=True,
                    )
                if result.used_fallback:
                    fallbacks += 1
                window_outcomes.append(result)

            outcomes.extend(window_outcomes)

            if on_window is not None:
                await on_window(window_outcomes)

            if start + window_size < len(reviews):
                await asyncio.sleep(profile.window_delay)

        logger.info(
            f"Batch complete: {len(outcomes)} reviews in {total_windows} windows "
            f"({fallbacks} fallback results)"
        )
        return outcomes
