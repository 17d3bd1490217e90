"""
Survey classification for the analytics pipeline

Groups surveys into comparable types from their free-text titles using an
ordered list of keyword rules.
"""

import logging
from typing import Any, Dict, List, Optional

from .. import config
from ..pipeline import SurveyData

logger = logging.getLogger(__name__)


def classify(title: str, rules: Optional[List[Dict[str, Any]]] = None) -> str:
    """
    Map a survey title to its canonical type label.

    Rules are tried in order and the first one with any keyword contained in
    the trimmed title wins. No case folding is applied. A title matching no
    rule is its own label, so unmatched surveys form singleton groups.

    Args:
        title: Survey title as stored
        rules: Ordered ``{"keywords": [...], "label": ...}`` dicts
            (default: config.SURVEY_TYPE_RULES)

    Returns:
        The label of the first matching rule, or the trimmed title

    Example:
        >>> classify("ab", [{"keywords": ["a"], "label": "X"},
        ...                 {"keywords": ["ab"], "label": "Y"}])
        'X'
    """
    if rules is None:
        rules = config.SURVEY_TYPE_RULES

    text = title.strip() if isinstance(title, str) else ""
    for rule in rules:
        if any(keyword in text for keyword in rule["keywords"]):
            return rule["label"]
    return text


def add_survey_types(
    data: SurveyData,
    rules: Optional[List[Dict[str, Any]]] = None,
) -> SurveyData:
    """
    Add a ``survey_type`` column to the surveys frame.

    Args:
        data: Analysis state
        rules: Classification rules (default: config.SURVEY_TYPE_RULES)

    Returns:
        The state with classified surveys
    """
    surveys = data.surveys.copy()
    surveys["survey_type"] = [classify(title, rules) for title in surveys["title"]]

    if rules is None:
        rules = config.SURVEY_TYPE_RULES
    known_labels = {rule["label"] for rule in rules}
    unmatched = surveys.loc[~surveys["survey_type"].isin(known_labels), "survey_type"]
    if len(unmatched) > 0:
        logger.debug("%d surveys matched no type rule and keep their title: %s",
                     len(unmatched), sorted(set(unmatched)))

    data.surveys = surveys
    return data
