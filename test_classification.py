"""
Tests for survey classification.

Run from the repository root: pytest test_classification.py
"""

import pytest

from program_analytics import classify, config
from program_analytics.pipeline import SurveyData
from program_analytics.steps.classification import add_survey_types


def test_first_matching_rule_wins():
    rules = [{"keywords": ["a"], "label": "X"}, {"keywords": ["ab"], "label": "Y"}]
    assert classify("ab", rules) == "X"


def test_rule_order_is_a_priority_list():
    rules = [{"keywords": ["ab"], "label": "Y"}, {"keywords": ["a"], "label": "X"}]
    assert classify("ab", rules) == "Y"
    assert classify("a", rules) == "X"


def test_unmatched_title_is_its_own_trimmed_label():
    rules = [{"keywords": ["zzz"], "label": "Z"}]
    assert classify("  Exit interview 2025  ", rules) == "Exit interview 2025"


def test_no_case_folding():
    rules = [{"keywords": ["Course Evaluation"], "label": "Course Evaluation"}]
    assert classify("course evaluation", rules) == "course evaluation"
    assert classify("Spring Course Evaluation", rules) == "Course Evaluation"


@pytest.mark.parametrize("title, expected", [
    ("تقييم المقرر الدراسي", "Course Evaluation"),
    ("استبيان رضا الطلاب", "Student Satisfaction"),
    ("تقييم جودة البرنامج الأكاديمي", "Program Quality"),
    ("تقييم المرافق والخدمات", "Facilities and Services"),
    ("تقييم أساليب التدريس", "Teaching Methods"),
    ("تقييم أعضاء هيئة التدريس", "Faculty Evaluation"),
    ("Course Evaluation - Lab", "Course Evaluation"),
])
def test_default_rules(title, expected):
    assert classify(title) == expected


def test_missing_title_is_empty_label():
    assert classify(None) == ""
    assert classify("   ") == ""


def test_default_rules_are_used_when_none_given():
    title = "تقييم المقرر الدراسي"
    assert classify(title) == classify(title, config.SURVEY_TYPE_RULES)


def test_add_survey_types_adds_column_without_touching_titles():
    data = SurveyData.from_records(surveys=[
        {"id": "s1", "title": " تقييم المقرر الدراسي "},
        {"id": "s2", "title": "Alumni follow-up"},
        {"id": "s3", "title": "Open day feedback"},
    ])

    result = add_survey_types(data)

    assert list(result.surveys["survey_type"]) == [
        "Course Evaluation", "Alumni", "Open day feedback"
    ]
    assert result.surveys["title"].iloc[0] == " تقييم المقرر الدراسي "


def test_add_survey_types_with_custom_rules():
    data = SurveyData.from_records(surveys=[{"id": "s1", "title": "ab"}])
    rules = [{"keywords": ["b"], "label": "B-type"}]

    result = add_survey_types(data, rules=rules)

    assert result.surveys["survey_type"].tolist() == ["B-type"]
