import logging
from typing import Sequence

from enrichment import enrich, grounding_sources, SUMMARY_LINK_LABEL, SUMMARY_SOURCES_HEADER
from gemini import Generator
from models import Issue
from prompts import EMPTY_SUMMARY, build_summary_prompt

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "We've been hard at work resolving issues across the city!"


async def summarize_resolved_issues(issues: Sequence[Issue], generator: Generator) -> str:
    """Community-facing summary of resolved issues, with Maps source links.

    An empty list never reaches the model.
    """
    if not issues:
        return EMPTY_SUMMARY

    prompt = build_summary_prompt(issues)
    try:
        result = await generator.generate(prompt)
    except Exception:
        logger.exception("Error calling Gemini for summary", extra={"issue_count": len(issues)})
        return SUMMARY_FALLBACK

    sources = grounding_sources(result.grounding_metadata, include_place_sources=True)
    return enrich(
        result.text,
        sources,
        True,
        header=SUMMARY_SOURCES_HEADER,
        label=SUMMARY_LINK_LABEL,
    )
