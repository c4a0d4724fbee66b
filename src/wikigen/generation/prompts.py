"""Prompt templates for wiki page generation, entity extraction and evaluation."""

from dataclasses import dataclass
from typing import Any

from wikigen.generation.quality import GenerationMode


@dataclass
class PromptTemplate:
    """A template for generating prompts with variable substitution."""

    template: str

    def render(self, **kwargs: Any) -> str:
        """Render the template with the given variables.

        Raises:
            KeyError: If a required variable is missing.
        """
        return self.template.format(**kwargs)


# =============================================================================
# Shared Guidance
# =============================================================================

STYLE_GUIDELINES = """# Writing Style
- Warm and reassuring, but factual: this is a reference, not a blog
- Clear and accessible: avoid jargon and explain terms when needed
- Practical: focus on what the reader can do
- Use British English spelling (colour, behaviour, organise)

# Article Structure
1. A single # title at the top, followed by a short introduction
2. Three to five ## sections with descriptive headings
3. A practical tips section with 5-8 bullet points
4. A "When to Seek Help" section when medically relevant

# Formatting
- Markdown only; **bold** key terms; short paragraphs of 3-4 sentences
- Bullet points over long prose, numbered steps for procedures"""

USER_MESSAGE = PromptTemplate("Write a comprehensive article about: {query}")


# =============================================================================
# Mode-Specific System Prompts
# =============================================================================

PURE_RETRIEVAL_TEMPLATE = PromptTemplate(
    """You are writing an evidence-based reference article about: "{query}"

{style}

# Source Material
The following excerpts come from trusted books and articles in the library.
They are the foundation for the article:

{context}

# Critical Guidelines
1. ONLY use information from the sources above. Never invent facts, statistics or quotes.
2. If sources disagree, present both perspectives fairly.
3. If a subtopic is thinly covered, say so rather than filling the gap.
4. Cite naturally ("Experts note that...") instead of numbered references.
5. For safety topics be clear and directive; do not soften safety guidance.

Write the article now in markdown. Begin with # followed by the title."""
)

HYBRID_TEMPLATE = PromptTemplate(
    """You are writing a reference article about: "{query}"

{style}

# Source Material
The following excerpts come from the library. They are relevant but may not
cover the whole topic:

{context}

# Guidelines
1. Prefer the source material wherever it covers a point.
2. You MAY supplement gaps with well-established general knowledge.
3. Never contradict the sources, and never invent statistics or quotes.
4. When supplementing, keep claims conservative and widely accepted.

Write the article now in markdown. Begin with # followed by the title."""
)

KNOWLEDGE_ONLY_TEMPLATE = PromptTemplate(
    """You are writing a concise reference entry about: "{query}"

No library sources matched this topic, so use well-established general knowledge.

{style}

# Rules
- Target 250-400 words
- Be conservative: only include widely accepted guidance
- No emotional padding; tables and bullet points over prose
- End with: *Note: General guidance only. Consult a healthcare provider for specific concerns.*

Write the entry now in markdown. Begin with # followed by the title."""
)

MODE_TEMPLATES = {
    GenerationMode.PURE_RETRIEVAL: PURE_RETRIEVAL_TEMPLATE,
    GenerationMode.HYBRID: HYBRID_TEMPLATE,
    GenerationMode.KNOWLEDGE_ONLY: KNOWLEDGE_ONLY_TEMPLATE,
}


def build_system_prompt(mode: GenerationMode, query: str, context: str = "") -> str:
    """System prompt for the selected generation mode."""
    return MODE_TEMPLATES[mode].render(query=query, context=context, style=STYLE_GUIDELINES)


def build_user_message(query: str) -> str:
    return USER_MESSAGE.render(query=query)


# =============================================================================
# Web Augmentation
# =============================================================================

AUGMENTED_CONTEXT_TEMPLATE = PromptTemplate(
    """# Book Sources (From Library)
{rag_context}

# Official Health Organisation Sources (Retrieved: {fetched_date})
Note: These excerpts were fetched from official health websites to supplement the library.
Prefer them where they give specific safety or medical guidance.

{web_context}"""
)


def build_augmented_context(rag_context: str, web_context: str, fetched_date: str) -> str:
    """Merge library context and fetched web text under separate headings."""
    return AUGMENTED_CONTEXT_TEMPLATE.render(
        rag_context=rag_context or "(no library sources)",
        web_context=web_context,
        fetched_date=fetched_date,
    )


# =============================================================================
# Entity Extraction
# =============================================================================

ENTITY_EXTRACTION_TEMPLATE = PromptTemplate(
    """Extract key concepts from this article that would make good wiki page links.

# Include
- Specific techniques or practices (swaddling, sleep training)
- Developmental milestones or stages (rolling over, first words)
- Medical or anatomical terms relevant to the reader (fontanelle, Moro reflex)
- Conditions or challenges (colic, reflux, teething)

# Exclude
- Very general words such as "baby", "parent", "child"
- Generic concepts such as "health" or "safety"

# Confidence Levels
- strong: core concept with lots of information likely available
- medium: specific topic with moderate information likely available
- weak: mentioned, but with limited dedicated information likely

# Article Content
{content}

# Output Format
Return a JSON array. Each item has:
- text: the exact text to link, as it appears in the article
- confidence: "strong" | "medium" | "weak"

Example:
[{{"text": "swaddling", "confidence": "strong"}}, {{"text": "Moro reflex", "confidence": "medium"}}]

Return ONLY the JSON array."""
)


def build_entity_extraction_prompt(content: str) -> str:
    return ENTITY_EXTRACTION_TEMPLATE.render(content=content)


# =============================================================================
# Content Evaluation
# =============================================================================

EVALUATION_SYSTEM_PROMPT = "You are a content quality evaluator. Respond with JSON only."

EVALUATION_TEMPLATE = PromptTemplate(
    """You are evaluating a reference wiki article.

Topic: {topic}
Sources used: {sources}

Rate the content on 5 criteria (1-20 each):

1. COMPLETENESS (1-20): Does it fully address the topic and cover the key aspects?
2. ACCURACY (1-20): Are claims reasonable, supported, and attributed where relevant?
3. STRUCTURE (1-20): Clear headings, logical flow, scannable bullets or tables?
4. ACTIONABLE (1-20): Practical advice the reader can actually use?
5. CONCISENESS (1-20): Focused, with no padding or repetition?

Content to evaluate:
---
{content}
---

Respond with ONLY valid JSON:
{{"completeness": N, "accuracy": N, "structure": N, "actionable": N, "conciseness": N, "feedback": "one sentence explanation"}}"""
)


def build_evaluation_prompt(topic: str, content: str, sources: list[str]) -> str:
    source_list = ", ".join(sources[:10]) if sources else "None (general knowledge only)"
    return EVALUATION_TEMPLATE.render(topic=topic, sources=source_list, content=content)
