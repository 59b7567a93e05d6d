"""Tests for template lookup and placeholder substitution."""

import pytest

from vmemo.config import CustomTemplate, Settings
from vmemo.formatting.template_engine import TemplateEngine, TemplateVariables, substitute_variables
from vmemo.formatting.templates import BUILT_IN_TEMPLATES, resolve_template


@pytest.fixture
def variables() -> TemplateVariables:
    return TemplateVariables(
        date="October 17, 2026",
        time="09:05 AM",
        datetime="2026-10-17T09:05:00+00:00",
        title="Weekly sync",
        duration="2m 5s",
        audio_path="recs/recording-1.wav",
        transcript_path="recs/transcript-1.md",
        speaker_count=3,
        language="en",
        content="Body text",
    )


class TestResolveTemplate:

    def test_built_in_by_id(self):
        assert resolve_template("journal").name == "Voice Journal"

    def test_custom_by_id(self):
        custom = {"mine": CustomTemplate(name="Mine", content="{{content}}", system_prompt="Be brief")}
        template = resolve_template("mine", custom)
        assert template.content == "{{content}}"
        assert template.system_prompt == "Be brief"

    def test_custom_without_prompt_borrows_default(self):
        custom = {"mine": CustomTemplate(name="Mine", content="{{content}}")}
        assert resolve_template("mine", custom).system_prompt == (
            BUILT_IN_TEMPLATES["meeting-notes"].system_prompt
        )

    def test_unknown_falls_back_to_meeting_notes(self):
        assert resolve_template("does-not-exist").id == "meeting-notes"
        assert resolve_template(None).id == "meeting-notes"

    def test_built_in_wins_over_custom_with_same_id(self):
        custom = {"raw": CustomTemplate(name="Shadow", content="x")}
        assert resolve_template("raw", custom).name == "Raw Transcript"


class TestSubstitution:

    def test_fixed_fields(self, variables):
        template = "{{title}} on {{date}} at {{time}} ({{duration}}, {{speakerCount}}, {{language}})"
        assert substitute_variables(template, variables) == (
            "Weekly sync on October 17, 2026 at 09:05 AM (2m 5s, 3, en)"
        )

    def test_paths_and_datetime(self, variables):
        result = substitute_variables("{{audioPath}} {{transcriptPath}} {{datetime}}", variables)
        assert result == "recs/recording-1.wav recs/transcript-1.md 2026-10-17T09:05:00+00:00"

    def test_missing_summary_is_removed(self, variables):
        assert substitute_variables("A{{summary}}B", variables) == "AB"

    def test_summary_inserted_when_present(self, variables):
        variables.summary = "Short summary"
        assert substitute_variables("> {{summary}}", variables) == "> Short summary"

    def test_custom_fields(self, variables):
        variables.custom_fields = {"project": "Apollo"}
        result = substitute_variables("{{customFields.project}}|{{customFields.other}}", variables)
        assert result == "Apollo|"

    def test_unknown_placeholders_removed(self, variables):
        assert substitute_variables("x{{whatever}}y{{ spaced }}z", variables) == "xyz"

    def test_values_are_inserted_literally(self, variables):
        variables.content = r"cost $1 \1 \g<0> (.*)"
        assert substitute_variables("{{content}}", variables) == r"cost $1 \1 \g<0> (.*)"

    def test_placeholder_inside_content_is_not_expanded(self, variables):
        variables.content = "literal {{title}} mention"
        assert substitute_variables("{{content}}", variables) == "literal  mention"


class TestTemplateEngine:

    def test_render_uses_default_template(self, variables):
        engine = TemplateEngine(Settings(default_template="raw"))
        rendered = engine.render(variables)
        assert rendered.startswith("# Transcript: Weekly sync")
        assert "**Language**: en" in rendered
        assert "{{" not in rendered

    def test_render_meeting_notes_drops_missing_summary(self, variables):
        rendered = TemplateEngine(Settings()).render(variables)
        assert "# Meeting Notes: Weekly sync" in rendered
        assert "**Participants**: 3 speakers" in rendered
        assert "*Audio: [[recs/recording-1.wav]]*" in rendered
        assert "{{summary}}" not in rendered

    def test_render_with_custom_template(self, variables):
        settings = Settings(custom_templates={"mine": CustomTemplate(name="Mine", content="# {{title}}")})
        assert TemplateEngine(settings).render_with_template("mine", variables) == "# Weekly sync"

    def test_available_templates_lists_built_ins_then_custom(self):
        settings = Settings(custom_templates={"mine": CustomTemplate(name="Mine", content="x")})
        ids = [template["id"] for template in TemplateEngine(settings).available_templates()]
        assert ids[:6] == list(BUILT_IN_TEMPLATES)
        assert ids[-1] == "mine"
