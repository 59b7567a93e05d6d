"""Placeholder substitution for markdown templates."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import re

from ..config import Settings
from .templates import list_templates, resolve_template

# Matches any placeholder left over after substitution
RESIDUAL_PLACEHOLDER = re.compile(r"\{\{[^}]+\}\}")


@dataclass
class TemplateVariables:
    """Values substituted into a template for one run."""
    date: str
    time: str
    datetime: str
    title: str
    duration: str
    audio_path: str
    transcript_path: str
    speaker_count: int
    language: str
    content: str
    summary: Optional[str] = None
    custom_fields: Dict[str, str] = field(default_factory=dict)

    def fixed_fields(self) -> Dict[str, str]:
        """Placeholder name -> value for the always-present fields."""
        return {
            "date": self.date,
            "time": self.time,
            "datetime": self.datetime,
            "title": self.title,
            "duration": self.duration,
            "audioPath": self.audio_path,
            "transcriptPath": self.transcript_path,
            "speakerCount": str(self.speaker_count),
            "language": self.language,
            "content": self.content,
        }


class TemplateEngine:
    """
    Renders templates by literal {{name}} substitution.

    Unknown placeholders are deleted, never left in the output.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def render(self, variables: TemplateVariables) -> str:
        """Render the configured default template."""
        return self.render_with_template(self.settings.default_template, variables)

    def render_with_template(self, template_id: str, variables: TemplateVariables) -> str:
        """Render a specific template; unknown ids fall back to the default."""
        return substitute_variables(self.get_template_content(template_id), variables)

    def get_template_content(self, template_id: str) -> str:
        return resolve_template(template_id, self.settings.custom_templates).content

    def available_templates(self) -> List[Dict[str, str]]:
        return list_templates(self.settings.custom_templates)


def substitute_variables(template: str, variables: TemplateVariables) -> str:
    """
    Substitute placeholders in a template string.

    Order: fixed fields, summary (only when present), custom fields, then a
    catch-all pass that removes whatever placeholders remain.
    """
    result = template

    for name, value in variables.fixed_fields().items():
        result = result.replace("{{" + name + "}}", value)

    if variables.summary:
        result = result.replace("{{summary}}", variables.summary)

    for key, value in variables.custom_fields.items():
        result = result.replace("{{customFields." + key + "}}", value)

    return RESIDUAL_PLACEHOLDER.sub("", result)
