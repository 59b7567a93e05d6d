"""
Transcript formatting through the configured LLM provider.

Builds the prompt pair for a template, runs the completion and extracts
the structured parts (title, summary, action items, decisions) from the
returned markdown.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import logging
import re
import time

from ..config import Settings
from .providers import (
    CompletionProvider,
    MissingCredentialError,
    create_provider,
)
from .retry import RetryPolicy
from .templates import BUILT_IN_TEMPLATES, resolve_template

logger = logging.getLogger(__name__)

HEADING = re.compile(r"^\s*(#{1,6})\s+(.*?)\s*#*\s*$")
CHECKBOX_ITEM = re.compile(r"^\s*[-*]\s*\[[ xX]\]\s*")
BULLET_ITEM = re.compile(r"^\s*[-*]\s+")

SUMMARY_HEADINGS = re.compile(r"^(summary|overview|요약):?$", re.IGNORECASE)
ACTION_ITEM_HEADINGS = re.compile(r"^(action items|액션 아이템|할 일):?$", re.IGNORECASE)
DECISION_HEADINGS = re.compile(r"^(decisions|decisions made|결정 사항|결정):?$", re.IGNORECASE)

MAX_TITLE_LENGTH = 100
UNTITLED = "Untitled Document"


@dataclass(frozen=True)
class FormattingMetadata:
    provider: str
    model: str
    template_id: str
    tokens_used: int
    processing_time: float  # seconds


@dataclass(frozen=True)
class FormattedDocument:
    """LLM-formatted transcript with the parts extracted from it."""
    content: str
    title: str
    summary: Optional[str]
    action_items: Optional[Tuple[str, ...]]
    decisions: Optional[Tuple[str, ...]]
    metadata: FormattingMetadata


def build_user_prompt(transcript_text: str, template_id: str) -> str:
    # Only built-in templates lend their name to the prompt
    template = BUILT_IN_TEMPLATES.get(template_id)
    template_name = template.name if template else "document"

    return f"""Please format the following voice transcript into a well-structured {template_name}:

---
TRANSCRIPT:
{transcript_text}
---

Remember to:
- Clean up filler words (um, uh, like, you know)
- Fix grammar and punctuation
- Add logical section headers
- Extract action items and decisions if applicable
- Maintain the original meaning and important details"""


def _section_lines(content: str, heading_pattern: re.Pattern) -> Optional[List[str]]:
    """
    Lines under the first heading whose text matches heading_pattern.

    Capture stops at the next heading of the same or a shallower level.
    Returns None when no such heading exists.
    """
    lines = content.splitlines()
    for index, line in enumerate(lines):
        match = HEADING.match(line)
        if not match or not heading_pattern.match(match.group(2)):
            continue

        level = len(match.group(1))
        captured = []
        for following in lines[index + 1:]:
            next_heading = HEADING.match(following)
            if next_heading and len(next_heading.group(1)) <= level:
                break
            captured.append(following)
        return captured
    return None


def _bullet_items(lines: List[str], allow_checkbox: bool) -> Optional[Tuple[str, ...]]:
    items = []
    for line in lines:
        if allow_checkbox and CHECKBOX_ITEM.match(line):
            item = CHECKBOX_ITEM.sub("", line, count=1)
        elif BULLET_ITEM.match(line):
            item = BULLET_ITEM.sub("", line, count=1)
        else:
            continue
        item = item.strip()
        if item:
            items.append(item)
    return tuple(items) if items else None


def extract_summary(content: str) -> Optional[str]:
    """Text of the Summary/Overview section, or None if missing or empty."""
    lines = _section_lines(content, SUMMARY_HEADINGS)
    if lines is None:
        return None
    return "\n".join(lines).strip() or None


def extract_action_items(content: str) -> Optional[Tuple[str, ...]]:
    """Bullet and checkbox items under an Action Items heading."""
    lines = _section_lines(content, ACTION_ITEM_HEADINGS)
    if lines is None:
        return None
    return _bullet_items(lines, allow_checkbox=True)


def extract_decisions(content: str) -> Optional[Tuple[str, ...]]:
    """Bullet items under a Decisions heading."""
    lines = _section_lines(content, DECISION_HEADINGS)
    if lines is None:
        return None
    return _bullet_items(lines, allow_checkbox=False)


def generate_title(content: str) -> str:
    """
    Pick a title for formatted content.

    The first markdown heading wins; otherwise the first sentence if it is
    short enough; otherwise a fixed placeholder.
    """
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("#"):
            return re.sub(r"^#+\s*", "", stripped)[:MAX_TITLE_LENGTH]

    first_sentence = re.split(r"[.!?]", content, maxsplit=1)[0].strip()
    if first_sentence and len(first_sentence) <= MAX_TITLE_LENGTH:
        return first_sentence

    return UNTITLED


class FormatterService:
    """
    Formats transcripts with the provider selected in settings.

    Args:
        settings: Settings snapshot for this run
        provider_factory: Builds a provider from (type, config, retry_policy)
        retry_policy: Retry policy handed to the provider
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider_factory: Callable[..., CompletionProvider] = create_provider,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self.settings = settings or Settings()
        self.provider_factory = provider_factory
        self.retry_policy = retry_policy

    def get_active_provider(self) -> CompletionProvider:
        """
        Resolve the configured provider.

        Raises:
            ProviderUnavailableError: If the provider type is unknown
            MissingCredentialError: If the provider has no API key
        """
        provider_type = self.settings.ai_provider
        provider = self.provider_factory(
            provider_type,
            self.settings.provider_config(provider_type),
            self.retry_policy,
        )
        if not provider.is_configured():
            raise MissingCredentialError(
                f"{provider_type} API key not configured. Please add your API key in settings.",
                provider=provider_type,
            )
        return provider

    async def format(self, transcript_text: str, template_id: Optional[str] = None) -> FormattedDocument:
        """
        Format a transcript into a structured document.

        Args:
            transcript_text: Raw transcript text
            template_id: Template to format for (settings default if None)

        Returns:
            FormattedDocument with extracted parts and metadata

        Raises:
            ProviderError: If the provider cannot be used or the call fails
        """
        template_id = template_id or self.settings.default_template
        provider = self.get_active_provider()
        template = resolve_template(template_id, self.settings.custom_templates)

        logger.info(f"Formatting transcript with {provider.provider_type} ({template.name})")
        start_time = time.time()

        response = await provider.complete(
            template.system_prompt,
            build_user_prompt(transcript_text, template_id),
        )

        processing_time = time.time() - start_time
        logger.debug(
            f"Formatting took {processing_time:.2f}s, {response.usage.total} tokens"
        )

        return FormattedDocument(
            content=response.content,
            title=generate_title(response.content),
            summary=extract_summary(response.content),
            action_items=extract_action_items(response.content),
            decisions=extract_decisions(response.content),
            metadata=FormattingMetadata(
                provider=provider.provider_type,
                model=response.model,
                template_id=template_id,
                tokens_used=response.usage.total,
                processing_time=processing_time,
            ),
        )
