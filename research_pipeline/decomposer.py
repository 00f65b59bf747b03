"""Split one research request into three fixed subtasks.

The partitioning is not content-adaptive: each subtask is small enough to
finish inside one completion-call timeout, which a single all-in-one
prompt would not.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from langsmith import traceable

from .errors import ValidationError
from .models import Decomposition, ResearchRequest, SubtaskPrompt
from .prompts import (
    DEGRADED_SUBTASK,
    ENTITY_BLOCK,
    LANGUAGE_BLOCK,
    PLACEHOLDER_SECTION,
    RECOMBINATION_TEMPLATE,
    RESEARCH_CONTEXT,
    SUBTASK_AUDIENCE,
    SUBTASK_COMPETITIVE,
    SUBTASK_FACTS,
    USER_CONTEXT_BLOCK,
)

logger = logging.getLogger(__name__)

CONTEXT_ECHO_CHARS = 500

SOURCE_LABELS: Dict[str, str] = {
    "recent": "recent information",
    "scholar": "scholarly articles",
    "news": "news sources",
}

LANGUAGE_NAMES: Dict[str, str] = {
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
}


@dataclass(frozen=True)
class Angle:
    key: str
    title: str
    template: str


ANGLES: List[Angle] = [
    Angle("facts", "Current Facts & Market Data", SUBTASK_FACTS),
    Angle("audience", "Audience & Pain-Point Analysis", SUBTASK_AUDIENCE),
    Angle("competitive", "Competitive Landscape & Best Practices", SUBTASK_COMPETITIVE),
]

_HINT_PATTERNS = {
    "audience": re.compile(r"Target Audience:\s*([^,\n]+)", re.IGNORECASE),
    "content_type": re.compile(r"Content Type:\s*([^,\n]+)", re.IGNORECASE),
    "platform": re.compile(r"Platform:\s*([^,\n]+)", re.IGNORECASE),
}
_HINT_DEFAULTS = {
    "audience": "general audience",
    "content_type": "article",
    "platform": "general",
}


def validate_topic(topic: Optional[str]) -> str:
    cleaned = (topic or "").strip()
    if not cleaned:
        raise ValidationError("Topic is required")
    return cleaned


def resolve_hints(request: ResearchRequest) -> Dict[str, str]:
    """Audience / content type / platform: explicit fields win, then
    ``Label: value`` markers in the free-text context, then defaults."""
    hints: Dict[str, str] = {}
    for name, pattern in _HINT_PATTERNS.items():
        explicit = getattr(request, name)
        if explicit and explicit.strip():
            hints[name] = explicit.strip()
            continue
        match = pattern.search(request.context or "")
        hints[name] = match.group(1).strip() if match else _HINT_DEFAULTS[name]
    return hints


def format_sources(sources: List[str]) -> str:
    labels = [SOURCE_LABELS.get(s, s) for s in sources if s and s.strip()]
    return ", ".join(labels) or SOURCE_LABELS["recent"]


def build_research_context(request: ResearchRequest, today: Optional[date] = None) -> str:
    """The full prompt context shared by every subtask."""
    today = today or date.today()
    hints = resolve_hints(request)
    context = (request.context or "").strip()
    company = (request.company_name or "").strip()
    language = (request.language or "en").strip().lower()

    return RESEARCH_CONTEXT.format(
        topic=request.topic.strip(),
        today=f"{today:%B} {today.day}, {today.year}",
        audience=hints["audience"],
        platform=hints["platform"],
        content_type=hints["content_type"],
        sources_text=format_sources(request.sources),
        user_context=USER_CONTEXT_BLOCK.format(context=context) if context else "",
        entity_block=ENTITY_BLOCK.format(company_name=company) if company else "",
        language_block=(
            LANGUAGE_BLOCK.format(language=LANGUAGE_NAMES.get(language, language))
            if language != "en" else ""
        ),
    )


def build_recombination_template(topic: str, context: str) -> str:
    context = (context or "").strip()
    if len(context) > CONTEXT_ECHO_CHARS:
        echo = context[:CONTEXT_ECHO_CHARS].rstrip() + "..."
    else:
        echo = context or "(none provided)"
    return RECOMBINATION_TEMPLATE.format(topic=topic, context_echo=echo)


def placeholder_text(subtask: SubtaskPrompt, topic: str) -> str:
    return PLACEHOLDER_SECTION.format(
        number=subtask.index + 1,
        total=len(ANGLES),
        angle_title=subtask.title,
        topic=topic,
    )


@traceable(name="decompose")
def decompose(request: ResearchRequest, today: Optional[date] = None) -> Decomposition:
    topic = validate_topic(request.topic)
    hints = resolve_hints(request)
    research_context = build_research_context(request, today=today)

    subtasks = [
        SubtaskPrompt(
            index=i,
            angle=angle.key,
            title=angle.title,
            prompt=angle.template.format(
                research_context=research_context,
                topic=topic,
                platform=hints["platform"],
                content_type=hints["content_type"],
            ),
            degraded_prompt=DEGRADED_SUBTASK.format(angle_title=angle.title.lower(), topic=topic),
        )
        for i, angle in enumerate(ANGLES)
    ]
    logger.info(
        "Decomposed '%s' into %s subtasks (context %s chars)",
        topic, len(subtasks), len(research_context),
    )
    return Decomposition(
        subtasks=subtasks,
        recombination_template=build_recombination_template(topic, request.context),
    )
