"""
Built-in markdown templates and template lookup.

Each template pairs a markdown skeleton (rendered by the TemplateEngine)
with the system prompt given to the LLM when formatting for it.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import CustomTemplate

DEFAULT_TEMPLATE_ID = "meeting-notes"


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    description: str
    content: str
    system_prompt: str


BUILT_IN_TEMPLATES: Dict[str, Template] = {
    "meeting-notes": Template(
        id="meeting-notes",
        name="Meeting Notes",
        description="Structured meeting minutes with action items",
        content="""# Meeting Notes: {{title}}

**Date**: {{date}}
**Time**: {{time}}
**Duration**: {{duration}}
**Participants**: {{speakerCount}} speakers

---

## Summary

{{summary}}

## Discussion Points

{{content}}

## Action Items

- [ ] 

## Decisions Made

- 

## Next Steps

- 

---

*Recorded with VMemo*
*Audio: [[{{audioPath}}]]*""",
        system_prompt="""You are an expert meeting note formatter. Transform the transcript into well-structured meeting notes.

Your responsibilities:
1. Create a concise executive summary (2-3 sentences)
2. Organize discussion points by topic with clear headers
3. Extract and list all action items with assignees if mentioned
4. Identify and document key decisions made
5. Suggest logical next steps based on the discussion
6. Clean up filler words and verbal tics
7. Fix grammar and improve readability

Format with Markdown:
- Use ## for major sections
- Use ### for subsections
- Use bullet points for lists
- Use checkboxes for action items
- Bold important terms and names

Keep the original meaning and tone. Do not add information not present in the transcript.""",
    ),
    "lecture-notes": Template(
        id="lecture-notes",
        name="Lecture Notes",
        description="Educational content with key concepts and summaries",
        content="""# Lecture: {{title}}

**Date**: {{date}}
**Duration**: {{duration}}
**Subject**: 

---

## Key Concepts

{{summary}}

## Detailed Notes

{{content}}

## Important Terms

- 

## Questions to Review

- 

## Related Topics

- 

---

*Recorded with VMemo*
*Audio: [[{{audioPath}}]]*""",
        system_prompt="""You are an expert educational content formatter. Transform the lecture transcript into comprehensive study notes.

Your responsibilities:
1. Identify and highlight key concepts and main ideas
2. Organize content into logical learning sections
3. Extract important terminology and definitions
4. Create review questions based on the content
5. Suggest related topics for further study
6. Clean up verbal fillers and improve readability
7. Preserve technical accuracy and nuance

Format with Markdown:
- Use ## for major topics
- Use ### for subtopics
- Use bullet points for lists
- Use **bold** for key terms
- Use > blockquotes for important quotes or definitions

Optimize for learning and review. Maintain academic rigor.""",
    ),
    "interview": Template(
        id="interview",
        name="Interview Notes",
        description="Q&A format with candidate evaluation",
        content="""# Interview: {{title}}

**Date**: {{date}}
**Duration**: {{duration}}
**Participants**: {{speakerCount}}

---

## Overview

{{summary}}

## Questions & Answers

{{content}}

## Key Observations

- 

## Strengths

- 

## Areas for Follow-up

- 

## Overall Assessment

---

*Recorded with VMemo*
*Audio: [[{{audioPath}}]]*""",
        system_prompt="""You are an expert interview documenter. Transform the interview transcript into structured Q&A notes.

Your responsibilities:
1. Clearly separate questions from answers
2. Identify the interviewer and interviewee
3. Highlight key responses and notable quotes
4. Note any follow-up questions or clarifications
5. Extract observable skills and qualities
6. Maintain objectivity and accuracy
7. Clean up filler words while preserving meaning

Format with Markdown:
- Use **Q:** and **A:** prefixes for dialogue
- Use ### for topic transitions
- Use bullet points for observations
- Use > blockquotes for notable responses

Preserve the authentic voice of the interviewee. Be objective and thorough.""",
    ),
    "brainstorm": Template(
        id="brainstorm",
        name="Brainstorm Session",
        description="Ideas and creative concepts organized by theme",
        content="""# Brainstorm: {{title}}

**Date**: {{date}}
**Duration**: {{duration}}
**Participants**: {{speakerCount}}

---

## Session Goal

{{summary}}

## Ideas Generated

{{content}}

## Top Ideas to Explore

1. 
2. 
3. 

## Action Items

- [ ] 

## Parking Lot (Future Ideas)

- 

---

*Recorded with VMemo*
*Audio: [[{{audioPath}}]]*""",
        system_prompt="""You are an expert creative session facilitator. Transform the brainstorm transcript into organized idea documentation.

Your responsibilities:
1. Capture ALL ideas mentioned, even incomplete ones
2. Group related ideas by theme or category
3. Identify the most promising or frequently discussed ideas
4. Note any constraints or concerns raised
5. Extract action items for follow-up
6. Preserve creative energy and spontaneity
7. Clean up while maintaining idea essence

Format with Markdown:
- Use ## for idea categories
- Use numbered lists for ranked ideas
- Use bullet points for idea details
- Mark breakthrough ideas with a lightbulb emoji
- Mark concerns or constraints with a warning emoji

Capture the creative spirit. Every idea has potential value.""",
    ),
    "journal": Template(
        id="journal",
        name="Voice Journal",
        description="Personal reflection and daily thoughts",
        content="""# Journal Entry

**Date**: {{date}}
**Time**: {{time}}
**Duration**: {{duration}}

---

## Today's Thoughts

{{content}}

## Reflections

{{summary}}

## Gratitude

- 

## Tomorrow's Intentions

- 

---

*Voice journal powered by VMemo*""",
        system_prompt="""You are a thoughtful journal assistant. Transform the voice journal into a reflective written entry.

Your responsibilities:
1. Preserve the personal, authentic voice
2. Organize thoughts into coherent paragraphs
3. Identify themes and patterns in the reflection
4. Extract any goals or intentions mentioned
5. Note any gratitude or positive observations
6. Gently improve readability without losing intimacy
7. Maintain privacy and sensitivity

Format with Markdown:
- Use flowing paragraphs for narrative sections
- Use bullet points for lists
- Use *italics* for inner thoughts
- Use > blockquotes for memorable realizations

This is personal writing. Preserve authenticity and emotional truth.""",
    ),
    "raw": Template(
        id="raw",
        name="Raw Transcript",
        description="Unformatted transcript with minimal cleanup",
        content="""# Transcript: {{title}}

**Date**: {{date}} {{time}}
**Duration**: {{duration}}
**Language**: {{language}}

---

{{content}}

---

*Transcribed with VMemo using voxmlx*
*Audio: [[{{audioPath}}]]*""",
        system_prompt="""You are a transcript cleaner. Make minimal improvements to the raw transcript.

Your responsibilities:
1. Add proper punctuation and capitalization
2. Fix obvious speech recognition errors
3. Add paragraph breaks at natural pauses
4. Keep ALL content - do not summarize or remove anything
5. Do not add headers or structure
6. Do not interpret or expand on content

Output the cleaned transcript as continuous text with paragraph breaks.
This should remain as close to verbatim as possible.""",
    ),
}


def resolve_template(
    template_id: Optional[str],
    custom_templates: Optional[Dict[str, CustomTemplate]] = None
) -> Template:
    """
    Look up a template: built-in by id, then custom by id, then the default.

    Never fails. A custom template without its own system prompt borrows
    the default template's prompt.
    """
    default = BUILT_IN_TEMPLATES[DEFAULT_TEMPLATE_ID]

    if template_id in BUILT_IN_TEMPLATES:
        return BUILT_IN_TEMPLATES[template_id]

    custom = (custom_templates or {}).get(template_id) if template_id else None
    if custom is not None:
        return Template(
            id=template_id,
            name=custom.name,
            description=custom.description,
            content=custom.content,
            system_prompt=custom.system_prompt or default.system_prompt,
        )

    return default


def list_templates(custom_templates: Optional[Dict[str, CustomTemplate]] = None) -> List[Dict[str, str]]:
    """List built-in then custom templates as id/name/description dicts."""
    templates = [
        {"id": t.id, "name": t.name, "description": t.description}
        for t in BUILT_IN_TEMPLATES.values()
    ]
    for template_id, custom in (custom_templates or {}).items():
        templates.append({"id": template_id, "name": custom.name, "description": custom.description})
    return templates
