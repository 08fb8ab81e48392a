"""
Key Loader

Loads translation keys to evaluate from a JSON batch file.

Format:
    {
      "source_language": "en",
      "keys": [
        {
          "key": "checkout.submit",
          "source": "Place order",
          "translations": {"de": "Bestellung aufgeben", "fr": "Passer la commande"},
          "related_keys": [
            {"key": "checkout.cancel", "source": "Cancel",
             "translations": {"de": "Abbrechen"},
             "relationship_type": "NEARBY", "confidence": 0.92, "is_approved": true}
          ],
          "format_scores": {"de": 100, "fr": 80}
        }
      ]
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path

from quality_gauge_core.domain.entities import MultiLanguageRelatedKey, TargetTranslation


@dataclass
class KeyEvaluationItem:
    """One key with every target translation to evaluate"""
    key: str
    source: str
    translations: list[TargetTranslation]
    related_keys: list[MultiLanguageRelatedKey] = field(default_factory=list)
    # Structural (placeholder / ICU) score per language; 100 when absent
    format_scores: dict[str, float] = field(default_factory=dict)

    @property
    def languages(self) -> list[str]:
        return [t.language for t in self.translations]


@dataclass
class KeyBatch:
    """Batch file contents"""
    source_language: str
    items: list[KeyEvaluationItem]


def _require(data: dict, name: str, expected_type: type, where: str):
    if name not in data:
        raise ValueError(f"Required field '{name}' is missing: {where}")
    value = data[name]
    if not isinstance(value, expected_type):
        raise ValueError(f"Field '{name}' must be of type {expected_type.__name__}: {where}")
    return value


def _parse_translations(data: dict, where: str) -> dict[str, str]:
    translations = _require(data, "translations", dict, where)
    for lang, value in translations.items():
        if not isinstance(value, str):
            raise ValueError(f"Translation for '{lang}' must be a string: {where}")
    return translations


def _parse_related_key(data: dict, where: str) -> MultiLanguageRelatedKey:
    if not isinstance(data, dict):
        raise ValueError(f"Related key must be an object: {where}")
    confidence = data.get("confidence")
    if confidence is not None and (isinstance(confidence, bool) or not isinstance(confidence, (int, float))):
        raise ValueError(f"Field 'confidence' must be a number: {where}")
    return MultiLanguageRelatedKey(
        key=_require(data, "key", str, where),
        source=_require(data, "source", str, where),
        translations=_parse_translations(data, where),
        relationship_type=data.get("relationship_type"),
        confidence=float(confidence) if confidence is not None else None,
        is_approved=bool(data.get("is_approved", False)),
    )


def _parse_item(data: dict, index: int) -> KeyEvaluationItem:
    if not isinstance(data, dict):
        raise ValueError(f"keys[{index}] must be an object")
    where = f"keys[{index}]"
    key = _require(data, "key", str, where)
    where = f"keys[{index}] ({key})"

    translations = _parse_translations(data, where)
    if not translations:
        raise ValueError(f"At least one translation is required: {where}")

    related_keys = [
        _parse_related_key(related, f"{where}.related_keys[{i}]")
        for i, related in enumerate(data.get("related_keys") or [])
    ]

    format_scores = data.get("format_scores") or {}
    if not isinstance(format_scores, dict):
        raise ValueError(f"Field 'format_scores' must be of type dict: {where}")

    return KeyEvaluationItem(
        key=key,
        source=_require(data, "source", str, where),
        translations=[TargetTranslation(language=lang, value=value) for lang, value in translations.items()],
        related_keys=related_keys,
        format_scores={lang: float(score) for lang, score in format_scores.items()},
    )


def parse_key_batch(data: dict) -> KeyBatch:
    """
    Create a KeyBatch from dictionary data

    Raises:
        ValueError: If the data does not match the batch format
    """
    if not isinstance(data, dict):
        raise ValueError("Batch must be a JSON object")
    source_language = _require(data, "source_language", str, "batch")
    keys = _require(data, "keys", list, "batch")
    items = [_parse_item(item, i) for i, item in enumerate(keys)]
    return KeyBatch(source_language=source_language, items=items)


def load_key_batch(file_path: str | Path) -> KeyBatch:
    """
    Load a batch JSON file

    Args:
        file_path: Path to the batch JSON file

    Returns:
        KeyBatch: Parsed batch

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or a required field is missing
    """
    with open(file_path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}") from e
    return parse_key_batch(data)
