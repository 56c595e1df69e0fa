"""Named prompt templates with ``{{slot}}`` placeholders.

Every template declares its parameters up front. Construction fails when the
placeholders used in the system or user text differ from the declared
parameters, so a broken template is caught at startup rather than on the
first request that renders it.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from .errors import PromptTemplateError, ValidationError

_SLOT = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def find_slots(text: str) -> set[str]:
    """Placeholder names used in a template string."""
    return set(_SLOT.findall(text or ""))


@dataclass(frozen=True)
class RenderedPrompt:
    system: str | None
    user: str


@dataclass(frozen=True)
class PromptTemplate:
    """A system/user prompt pair with named parameters.

    Attributes:
        name: Registry key.
        user: User message template.
        system: Optional system message template.
        parameters: Names every placeholder must come from.
    """

    name: str
    user: str
    system: str | None = None
    parameters: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check that placeholders and declared parameters match exactly.

        Raises:
            PromptTemplateError: On an unbound placeholder or an unused parameter.
        """
        used = find_slots(self.user) | find_slots(self.system or "")
        declared = set(self.parameters)
        unbound = used - declared
        unused = declared - used
        if unbound or unused:
            details = []
            if unbound:
                details.append(f"unbound placeholders {sorted(unbound)}")
            if unused:
                details.append(f"unused parameters {sorted(unused)}")
            raise PromptTemplateError(f"Prompt template '{self.name}': {', '.join(details)}")

    def render(self, params: dict[str, Any] | None = None) -> RenderedPrompt:
        """Substitute parameters into the template.

        Raises:
            ValidationError: If a declared parameter is missing or an unknown
                one is supplied.
        """
        params = params or {}
        missing = [p for p in self.parameters if p not in params or params[p] is None]
        extra = sorted(set(params) - set(self.parameters))
        if missing:
            raise ValidationError(
                f"Missing parameters for prompt '{self.name}': {', '.join(missing)}"
            )
        if extra:
            raise ValidationError(
                f"Unexpected parameters for prompt '{self.name}': {', '.join(extra)}"
            )

        def substitute(text: str) -> str:
            return _SLOT.sub(lambda m: str(params[m.group(1)]), text)

        return RenderedPrompt(
            system=substitute(self.system) if self.system else None,
            user=substitute(self.user),
        )


class PromptRegistry:
    """Named collection of prompt templates."""

    def __init__(self, templates: list[PromptTemplate] | None = None):
        self._templates: dict[str, PromptTemplate] = {}
        for template in templates or []:
            self.register(template)

    def register(self, template: PromptTemplate) -> None:
        if template.name in self._templates:
            raise PromptTemplateError(f"Prompt template '{template.name}' registered twice")
        self._templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        try:
            return self._templates[name]
        except KeyError:
            raise PromptTemplateError(f"Unknown prompt template: {name}") from None

    def names(self) -> list[str]:
        return sorted(self._templates)

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def validate(self) -> None:
        """Re-check every registered template."""
        for template in self._templates.values():
            template.validate()


RAG_ANSWER = PromptTemplate(
    name="rag_answer",
    system="""You are an assistant that answers questions using only the documents provided below.

Rules:
1. Only use information from the provided context to answer the question
2. If the context is "No relevant documents found." or does not contain the answer, say that you could not find the information in the uploaded documents. Do not guess or make up an answer
3. Mention the source file names when you use them
4. Be concise and direct in your answers

Context:
{{context}}""",
    user="{{question}}",
    parameters=("context", "question"),
)

ASSISTANT_TEMPLATES = [
    PromptTemplate(name="chat", user="{{message}}", parameters=("message",)),
    PromptTemplate(
        name="chat_with_system",
        system="""You are a friendly and professional AI assistant.
Give accurate, useful information in reply to the user's question.
Keep answers concise and easy to understand.""",
        user="{{message}}",
        parameters=("message",),
    ),
    PromptTemplate(
        name="explain",
        system="You are an expert {{role}}.",
        user="""Explain the following topic from the perspective of a {{role}}:
Topic: {{topic}}

Please give a detailed, expert answer.""",
        parameters=("role", "topic"),
    ),
    PromptTemplate(
        name="code_review",
        system="""You are a senior developer performing a code review.
Give feedback on:
1. Code quality
2. Performance
3. Security vulnerabilities
4. Best practices""",
        user="""Review the following {{language}} code:

```{{language}}
{{code}}
```

Point out what needs improvement and how to fix it.""",
        parameters=("language", "code"),
    ),
    PromptTemplate(
        name="translate",
        system="You are a professional translator. Translate naturally, taking context into account.",
        user="Translate the following text from {{source_lang}} to {{target_lang}}: {{text}}",
        parameters=("source_lang", "target_lang", "text"),
    ),
    PromptTemplate(
        name="summarize",
        system="You are an expert at summarizing text. Capture the key points concisely.",
        user="""Summarize the following text in at most {{max_words}} words:

{{text}}

Summary:""",
        parameters=("text", "max_words"),
    ),
    PromptTemplate(
        name="sql",
        system="""You are a database expert who turns natural-language requests into SQL.
Use MySQL syntax and write optimized queries.""",
        user="""Write an SQL query for the following request:

Table: {{table_name}}
Request: {{request}}

Return only the SQL query, with explanations as SQL comments.""",
        parameters=("table_name", "request"),
    ),
    PromptTemplate(
        name="sentiment",
        system="""You are an expert in sentiment analysis.
Classify the sentiment of a text as positive, negative or neutral.""",
        user="""Analyze the sentiment of the following text:
"{{text}}"

Answer in this format:
Sentiment: [positive/negative/neutral]
Confidence: [0-100]%
Reason: [short explanation]""",
        parameters=("text",),
    ),
    PromptTemplate(
        name="blog",
        system="You are a technical blogger who writes clear, well-structured posts.",
        user="""Write a blog post about: {{topic}}

Include an introduction, a few sections with headings and a conclusion.""",
        parameters=("topic",),
    ),
]

PERSONA_TEMPLATES = [
    PromptTemplate(
        name="persona_chat",
        system="""You are a friendly AI assistant.
You remember the earlier conversation with the user and answer with that context in mind.""",
        user="{{message}}",
        parameters=("message",),
    ),
    PromptTemplate(
        name="persona_personal_assistant",
        system="""You are a personal assistant.
You remember the user's name, preferences and schedule, and always take the earlier conversation into account.""",
        user="{{message}}",
        parameters=("message",),
    ),
    PromptTemplate(
        name="persona_tech_support",
        system="""You are a technical support specialist.
You remember the problems the user reported and the fixes already tried, and guide them step by step.""",
        user="{{message}}",
        parameters=("message",),
    ),
    PromptTemplate(
        name="persona_language_tutor",
        system="""You are a {{language}} language tutor.
You remember the student's earlier mistakes and what they have learned, and revisit what needs practice.""",
        user="{{message}}",
        parameters=("language", "message"),
    ),
    PromptTemplate(
        name="persona_shopping_assistant",
        system="""You are an online shopping assistant.
You remember the products the user is interested in, their budget and style, and give personalized recommendations.""",
        user="{{message}}",
        parameters=("message",),
    ),
    PromptTemplate(
        name="persona_storyteller",
        system="""You are an interactive storyteller.
You build a story together with the user and remember the plot, characters and choices so far.""",
        user="{{message}}",
        parameters=("message",),
    ),
    PromptTemplate(
        name="persona_multilingual",
        system="""You are a multilingual AI.
You remember which language the user has been using and reply in the language that fits the conversation.""",
        user="{{message}}",
        parameters=("message",),
    ),
]

STREAM_TEMPLATES = [
    PromptTemplate(
        name="stream_code",
        system="You are an experienced software engineer. Write clean, working code with brief comments.",
        user="Write {{language}} code for the following: {{description}}",
        parameters=("language", "description"),
    ),
    PromptTemplate(
        name="stream_story",
        system="You are a creative fiction writer.",
        user="Write a {{genre}} short story about {{topic}}.",
        parameters=("genre", "topic"),
    ),
    PromptTemplate(
        name="stream_analyze",
        system="You are a document analyst.",
        user="""Analyze the following document. Give a summary, the main points and any notable issues.

{{text}}""",
        parameters=("text",),
    ),
    PromptTemplate(
        name="stream_lecture",
        system="You are an experienced teacher who prepares lecture material.",
        user="Prepare lecture material on {{topic}} for {{audience}}, with an outline, explanations and examples.",
        parameters=("topic", "audience"),
    ),
    PromptTemplate(
        name="stream_translate",
        system="You are a professional translator. Keep the formatting of the original.",
        user="Translate the following document into {{target_lang}}:\n\n{{text}}",
        parameters=("text", "target_lang"),
    ),
]


def default_registry() -> PromptRegistry:
    """Registry with every template the application ships."""
    return PromptRegistry([RAG_ANSWER, *ASSISTANT_TEMPLATES, *PERSONA_TEMPLATES, *STREAM_TEMPLATES])
