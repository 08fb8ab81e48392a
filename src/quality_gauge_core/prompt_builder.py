"""
Prompt Builder

Builds the message lists sent to the grader for MQM evaluation.

Message layout:
- system: static MQM rubric + JSON-only instructions (prompt-cacheable)
- user: dynamic content (key, source, target(s), related keys as XML)

Conversation is the append-only message list used by the multi-language
conversational retry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from quality_gauge_core.domain.entities import MultiLanguageRelatedKey, RelatedKey, TargetTranslation
from quality_gauge_core.domain.value_objects import Message


_RUBRIC = """Score each dimension 0-100:

1. ACCURACY: Does the translation preserve the original meaning?
   - 100: Perfect semantic fidelity
   - 80-99: Minor omissions that don't affect meaning
   - 50-79: Some meaning lost
   - 0-49: Significant errors (wrong meaning, AI hallucination, explanation instead of translation)

2. FLUENCY: Does it read naturally in the target language?
   - 100: Native-level, perfect grammar
   - 80-99: Minor issues, still natural
   - 50-79: Awkward phrasing
   - 0-49: Hard to understand

3. TERMINOLOGY: Are domain terms translated correctly?
   - 100: All terms correct
   - 80-99: Minor inconsistencies
   - 50-79: Some wrong terms
   - 0-49: Major term errors"""

_RELATED_KEYS_GUIDE = """When <related_keys> are provided, use them to inform your evaluation:
- NEARBY keys: Adjacent UI elements in the same code location - match tone/formality
- KEY_PATTERN keys: Same feature area (e.g., form.*, button.*) - match terminology
- SAME_COMPONENT keys: Same UI component - ensure UI consistency
- SAME_FILE keys: Same source file - maintain style
- SEMANTIC keys: Similar text content - check for translation consistency
- Prioritize high-confidence (>0.8) and approved="true" translations as authoritative"""

MQM_SYSTEM_PROMPT = f"""You are an MQM (Multidimensional Quality Metrics) translation quality evaluator.

{_RUBRIC}

IMPORTANT: If the target looks like an AI response/explanation rather than a translation (contains questions, clarification requests, or is much longer than expected), score ACCURACY as 0.

{_RELATED_KEYS_GUIDE}

Return ONLY valid JSON in this exact format:
{{"accuracy":N,"fluency":N,"terminology":N,"issues":[{{"type":"accuracy|fluency|terminology","severity":"critical|major|minor","message":"..."}}]}}

If no issues found, return empty issues array: {{"accuracy":N,"fluency":N,"terminology":N,"issues":[]}}"""

MQM_MULTI_LANGUAGE_SYSTEM_PROMPT = f"""You are an MQM (Multidimensional Quality Metrics) translation quality evaluator.

CRITICAL: You are evaluating ALL translations for a single key. Apply CONSISTENT scoring across languages:
- Same issues MUST have the same severity in all languages
- Compare translations relative to each other for fair calibration
- Do not be harsh on one language and lenient on another

{_RUBRIC}

IMPORTANT: If any translation looks like an AI response/explanation rather than a translation (contains questions, clarification requests, or is much longer than expected), score its ACCURACY as 0.

{_RELATED_KEYS_GUIDE}

Return ONLY valid JSON in this EXACT format:
{{
  "evaluations": {{
    "LANG_CODE": {{
      "accuracy": N,
      "fluency": N,
      "terminology": N,
      "issues": [
        {{ "type": "accuracy", "severity": "major", "message": "Description of issue" }}
      ]
    }}
  }}
}}

ISSUE OBJECT FORMAT (MUST follow exactly):
- type: ONLY "accuracy", "fluency", or "terminology" (lowercase, no other values)
- severity: ONLY "critical", "major", or "minor" (lowercase, no other values)
- message: string describing the specific issue

If no issues for a language, use empty array: "issues": []
Each language code must match exactly what was provided in the request."""

RETRY_FEEDBACK_TEMPLATE = (
    "<validation_error>\n{error}\n</validation_error>\n\n"
    "Please fix the JSON and try again. Return ONLY the corrected JSON."
)

# XML 1.0 forbids these control characters (tab, LF and CR are allowed)
_INVALID_XML_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_LONE_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")


def escape_xml(text: str) -> str:
    """
    Escape XML special characters and drop characters XML cannot carry

    Example:
        escape_xml("Hello & <World>") -> "Hello &amp; &lt;World&gt;"
    """
    sanitized = _INVALID_XML_CHARS_RE.sub("", text)
    sanitized = _LONE_SURROGATE_RE.sub("", sanitized)
    return (
        sanitized
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def _related_key_attrs(related: RelatedKey | MultiLanguageRelatedKey) -> str:
    attrs = ""
    if related.relationship_type:
        attrs += f' type="{related.relationship_type}"'
    if related.confidence is not None:
        attrs += f' confidence="{related.confidence:.2f}"'
    if related.is_approved:
        attrs += ' approved="true"'
    return attrs


def build_single_user_prompt(
    key: str,
    source: str,
    target: str,
    source_language: str,
    target_language: str,
    related_keys: Sequence[RelatedKey] = (),
) -> str:
    """
    Build the user prompt for single-language evaluation

    Args:
        key: Translation key identifier
        source: Source language text
        target: Target language text
        source_language: Source language code (e.g. "en")
        target_language: Target language code (e.g. "de")
        related_keys: Nearby translations used as few-shot context

    Returns:
        User prompt string
    """
    parts = [
        f"Key: {key}",
        f'Source ({source_language}): "{source}"',
        f'Target ({target_language}): "{target}"',
    ]
    if related_keys:
        parts.append("")
        parts.append("<related_keys>")
        for related in related_keys:
            parts.append(f'  <related_key name="{escape_xml(related.key)}"{_related_key_attrs(related)}>')
            parts.append(f'    <source lang="{source_language}">{escape_xml(related.source)}</source>')
            parts.append(f'    <target lang="{target_language}">{escape_xml(related.target)}</target>')
            parts.append("  </related_key>")
        parts.append("</related_keys>")
    return "\n".join(parts)


def build_multi_language_user_prompt(
    key: str,
    source: str,
    source_language: str,
    targets: Sequence[TargetTranslation],
    related_keys: Sequence[MultiLanguageRelatedKey] = (),
) -> str:
    """
    Build the XML user prompt for multi-language evaluation

    Related keys only carry translations for the languages being evaluated.
    """
    languages = [t.language for t in targets]
    lines = [
        "<evaluation_request>",
        f"  <key>{escape_xml(key)}</key>",
        f'  <source lang="{source_language}">{escape_xml(source)}</source>',
        "",
        "  <translations>",
    ]
    for t in targets:
        lines.append(f'    <translation lang="{t.language}">{escape_xml(t.value)}</translation>')
    lines.append("  </translations>")

    if related_keys:
        lines.append("")
        lines.append("  <related_keys>")
        for related in related_keys:
            lines.append(f'    <related_key name="{escape_xml(related.key)}"{_related_key_attrs(related)}>')
            lines.append(f'      <source lang="{source_language}">{escape_xml(related.source)}</source>')
            for lang in languages:
                value = related.translations.get(lang)
                if value:
                    lines.append(f'      <translation lang="{lang}">{escape_xml(value)}</translation>')
            lines.append("    </related_key>")
        lines.append("  </related_keys>")

    lines.append("</evaluation_request>")
    return "\n".join(lines)


def build_retry_feedback(error_text: str) -> str:
    """User message asking the grader to correct its previous JSON"""
    return RETRY_FEEDBACK_TEMPLATE.format(error=error_text)


@dataclass(frozen=True)
class Conversation:
    """
    Append-only message list for one multi-language evaluation

    Each ``append`` returns a new Conversation, so the request sent on every
    attempt stays reproducible.
    """
    system: Message
    history: tuple[Message, ...] = ()
    max_history: int | None = None

    def append(self, *messages: Message) -> "Conversation":
        history = self.history + tuple(messages)
        if self.max_history is not None and len(history) > self.max_history:
            # Keep the original request and the most recent assistant/feedback pairs
            keep = (self.max_history - 1) // 2 * 2
            history = history[:1] + (history[-keep:] if keep > 0 else ())
        return Conversation(system=self.system, history=history, max_history=self.max_history)

    @property
    def messages(self) -> tuple[Message, ...]:
        return (self.system,) + self.history

    def __len__(self) -> int:
        return len(self.history) + 1


def build_single_messages(
    key: str,
    source: str,
    target: str,
    source_language: str,
    target_language: str,
    related_keys: Sequence[RelatedKey] = (),
    cache_control: bool = False,
) -> tuple[Message, ...]:
    """System + user messages for single-language evaluation"""
    return (
        Message(role="system", content=MQM_SYSTEM_PROMPT, cache_control=cache_control),
        Message(
            role="user",
            content=build_single_user_prompt(
                key, source, target, source_language, target_language, related_keys
            ),
        ),
    )


def start_multi_language_conversation(
    key: str,
    source: str,
    source_language: str,
    targets: Sequence[TargetTranslation],
    related_keys: Sequence[MultiLanguageRelatedKey] = (),
    cache_control: bool = False,
    max_history: int | None = None,
) -> Conversation:
    """Initial conversation (system rubric + request listing every target language)"""
    system = Message(
        role="system", content=MQM_MULTI_LANGUAGE_SYSTEM_PROMPT, cache_control=cache_control
    )
    user = Message(
        role="user",
        content=build_multi_language_user_prompt(key, source, source_language, targets, related_keys),
    )
    return Conversation(system=system, max_history=max_history).append(user)
