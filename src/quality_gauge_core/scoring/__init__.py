"""
Scoring sub-package

Provides MQM response parsing, the AI evaluator and score combination.
"""

from quality_gauge_core.domain.value_objects import MQMScore
from quality_gauge_core.scoring.ai_evaluator import AIEvaluator, create_evaluator, split_evenly
from quality_gauge_core.scoring.combine_scores import SCORE_WEIGHTS, calculate_combined_score
from quality_gauge_core.scoring.response_parser import (
    extract_json_object,
    extract_json_text,
    format_parse_error,
    parse_mqm_response,
    parse_multi_language_response,
    validate_mqm,
)

__all__ = [
    # value objects (re-exported from domain)
    "MQMScore",
    # evaluator
    "AIEvaluator",
    "create_evaluator",
    "split_evenly",
    # score combination
    "SCORE_WEIGHTS",
    "calculate_combined_score",
    # response parser
    "extract_json_object",
    "extract_json_text",
    "format_parse_error",
    "parse_mqm_response",
    "parse_multi_language_response",
    "validate_mqm",
]
