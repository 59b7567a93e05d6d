"""Tests for the formatter service and its markdown extractors."""

from unittest.mock import AsyncMock, Mock

import pytest

from vmemo.config import CustomTemplate, ProviderConfig, Settings
from vmemo.formatting.formatter import (
    FormatterService,
    build_user_prompt,
    extract_action_items,
    extract_decisions,
    extract_summary,
    generate_title,
)
from vmemo.formatting.providers import (
    CompletionResult,
    MissingCredentialError,
    ProviderUnavailableError,
    TokenUsage,
)
from vmemo.formatting.templates import BUILT_IN_TEMPLATES

FORMATTED = """# Launch Planning

## Summary

We agreed on a launch date.

## Action Items

- [ ] Send the invite
- [x] Book the room
* Call the vendor
- [ ]

## Decisions Made

- Launch on Monday
-

## Next Steps

- Follow up
"""


class TestExtractSummary:

    def test_section_body(self):
        assert extract_summary(FORMATTED) == "We agreed on a launch date."

    def test_deeper_headings_stay_in_section(self):
        content = "## Summary\nIntro\n### Detail\nMore\n## Other\nNope"
        assert extract_summary(content) == "Intro\n### Detail\nMore"

    def test_runs_to_end_of_text(self):
        assert extract_summary("## Overview\nAll of it\nstill here") == "All of it\nstill here"

    def test_case_insensitive_and_korean(self):
        assert extract_summary("## SUMMARY\ntext") == "text"
        assert extract_summary("### 요약\n내용") == "내용"

    def test_missing_or_empty(self):
        assert extract_summary("# Title\nNo sections") is None
        assert extract_summary("## Summary\n\n## Next\nx") is None

    def test_hashtag_lines_are_not_headings(self):
        content = "## Summary\nShip it.\n#followup with legal\nMore text\n## Next\nx"
        assert extract_summary(content) == "Ship it.\n#followup with legal\nMore text"


class TestExtractActionItems:

    def test_checkbox_and_plain_bullets(self):
        assert extract_action_items(FORMATTED) == ("Send the invite", "Book the room", "Call the vendor")

    def test_korean_heading(self):
        assert extract_action_items("## 할 일\n- 보고서 작성") == ("보고서 작성",)

    def test_heading_without_items_is_none(self):
        assert extract_action_items("## Action Items\n\nNothing here\n") is None

    def test_items_after_hashtag_line_are_kept(self):
        content = "## Action Items\n- Send the invite\n#urgent\n- Book the room"
        assert extract_action_items(content) == ("Send the invite", "Book the room")

    def test_missing_heading_is_none(self):
        assert extract_action_items("## Summary\n- not an action") is None


class TestExtractDecisions:

    def test_decisions_made_heading(self):
        assert extract_decisions(FORMATTED) == ("Launch on Monday",)

    def test_plain_decisions_heading(self):
        assert extract_decisions("# Decisions\n- A\n- B\n# Later\n- C") == ("A", "B")

    def test_missing(self):
        assert extract_decisions("## Summary\ntext") is None


class TestGenerateTitle:

    def test_first_heading(self):
        assert generate_title(FORMATTED) == "Launch Planning"

    def test_indented_deeper_heading(self):
        assert generate_title("intro line\n  ### Deep Title") == "Deep Title"

    def test_heading_truncated(self):
        assert generate_title("# " + "x" * 150) == "x" * 100

    def test_first_sentence(self):
        assert generate_title("Quick note about lunch. Then more!") == "Quick note about lunch"

    def test_long_sentence_is_untitled(self):
        assert generate_title("word " * 40) == "Untitled Document"

    def test_empty_is_untitled(self):
        assert generate_title("") == "Untitled Document"


class TestUserPrompt:

    def test_embeds_transcript_and_checklist(self):
        prompt = build_user_prompt("so hello", "lecture-notes")
        assert prompt.startswith(
            "Please format the following voice transcript into a well-structured Lecture Notes:"
        )
        assert "---\nTRANSCRIPT:\nso hello\n---" in prompt
        assert "- Clean up filler words (um, uh, like, you know)" in prompt
        assert prompt.endswith("- Maintain the original meaning and important details")

    def test_custom_template_named_document(self):
        assert "well-structured document:" in build_user_prompt("x", "my-custom")


class TestFormatterService:

    def _provider(self, content=FORMATTED):
        provider = Mock()
        provider.provider_type = "openai"
        provider.is_configured.return_value = True
        provider.complete = AsyncMock(
            return_value=CompletionResult(content=content, model="gpt-4.1", usage=TokenUsage(10, 5))
        )
        return provider

    @pytest.mark.asyncio
    async def test_format_builds_document(self):
        provider = self._provider()
        factory = Mock(return_value=provider)
        settings = Settings(ai_provider="openai")

        document = await FormatterService(settings, provider_factory=factory).format("raw text", "meeting-notes")

        factory.assert_called_once_with("openai", settings.provider_config("openai"), None)
        system_prompt, user_prompt = provider.complete.await_args.args
        assert system_prompt == BUILT_IN_TEMPLATES["meeting-notes"].system_prompt
        assert "TRANSCRIPT:\nraw text\n" in user_prompt

        assert document.title == "Launch Planning"
        assert document.summary == "We agreed on a launch date."
        assert document.action_items == ("Send the invite", "Book the room", "Call the vendor")
        assert document.decisions == ("Launch on Monday",)
        assert document.metadata.provider == "openai"
        assert document.metadata.model == "gpt-4.1"
        assert document.metadata.template_id == "meeting-notes"
        assert document.metadata.tokens_used == 15
        assert document.metadata.processing_time >= 0

    @pytest.mark.asyncio
    async def test_defaults_to_settings_template(self):
        provider = self._provider("plain text")
        settings = Settings(default_template="journal")

        document = await FormatterService(settings, provider_factory=Mock(return_value=provider)).format("x")

        assert document.metadata.template_id == "journal"
        assert provider.complete.await_args.args[0] == BUILT_IN_TEMPLATES["journal"].system_prompt
        assert document.summary is None
        assert document.action_items is None

    @pytest.mark.asyncio
    async def test_custom_template_prompt(self):
        provider = self._provider()
        settings = Settings(custom_templates={
            "mine": CustomTemplate(name="Mine", content="{{content}}", system_prompt="Custom prompt")
        })

        await FormatterService(settings, provider_factory=Mock(return_value=provider)).format("x", "mine")

        assert provider.complete.await_args.args[0] == "Custom prompt"

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        with pytest.raises(ProviderUnavailableError):
            await FormatterService(Settings(ai_provider="bogus")).format("text")

    @pytest.mark.asyncio
    async def test_missing_credential_fails_before_request(self):
        provider = self._provider()
        provider.is_configured.return_value = False

        service = FormatterService(Settings(), provider_factory=Mock(return_value=provider))
        with pytest.raises(MissingCredentialError):
            await service.format("text")

        provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_real_provider_without_key(self):
        settings = Settings(ai_provider="google", providers={"google": ProviderConfig()})
        with pytest.raises(MissingCredentialError):
            await FormatterService(settings).format("text")
