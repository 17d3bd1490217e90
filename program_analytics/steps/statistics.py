"""
Statistical calculation steps for the analytics pipeline

This module contains the per-question aggregator and the frame steps that
roll scores up per survey, program, course and survey type. Three
aggregation policies live here side by side and are not interchangeable:

- program satisfaction is a mean of per-survey means (every survey weighs
  the same, whatever its response volume);
- course satisfaction is a pooled mean over all answers of the linked
  surveys;
- comparison cells and program overall figures are pooled means over the
  surveys of one type, or of the whole program.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd

from .. import config
from ..models import Answer, ComplaintStats, Question, QuestionAggregate
from ..pipeline import SurveyData
from ..utils.stats_helpers import (
    coerce_scores, describe_scores, in_score_range, mean_of_means, valid_score_mask
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-question aggregation
# ---------------------------------------------------------------------------

def aggregate_question(answers: Iterable[Answer], question: Question) -> QuestionAggregate:
    """
    Compute the statistics of one question from its recorded answers.

    Args:
        answers: Answers recorded for the question within one survey;
            answers to other questions are ignored
        question: The question, whose type decides the aggregation

    Returns:
        QuestionAggregate with:
        - likert/rating: mean, std_dev (ddof=0) and response_count over
          values in [1, 5], distribution per integer level 1..5
        - mcq: distribution per declared choice, in declared order
        - text: the non-empty raw strings
        Numeric fields are 0 whenever no valid score exists.
    """
    own = [answer for answer in answers if answer.question_id == question.id]
    aggregate = QuestionAggregate(
        question_id=question.id,
        question_type=question.type,
        text=question.text,
    )

    if question.is_numeric:
        scores = coerce_scores([answer.numeric_value for answer in own])
        valid = scores[in_score_range(scores)]
        mean, std_dev, count = describe_scores(valid)

        level_counts = np.floor(valid).astype(int).value_counts()
        aggregate.mean = mean
        aggregate.std_dev = std_dev
        aggregate.response_count = count
        aggregate.answer_count = count
        aggregate.distribution = {
            level: int(level_counts.get(level, 0)) for level in config.SCORE_LEVELS
        }

    elif question.type == "mcq":
        distribution = {choice: 0 for choice in question.choices}
        for answer in own:
            if isinstance(answer.value, str) and answer.value in distribution:
                distribution[answer.value] += 1
        aggregate.distribution = distribution
        aggregate.answer_count = sum(distribution.values())

    elif question.type == "text":
        aggregate.text_responses = [
            answer.value for answer in own
            if isinstance(answer.value, str) and answer.value.strip()
        ]
        aggregate.answer_count = len(aggregate.text_responses)

    else:
        logger.debug("Question %s has unknown type %r, not aggregated",
                     question.id, question.type)

    return aggregate


def aggregate_survey_questions(
    questions: Sequence[Question],
    answers: Iterable[Answer],
) -> List[QuestionAggregate]:
    """
    Aggregate every question of one survey.

    Answers referring to a question outside the survey's current question
    set are skipped.

    Returns:
        One QuestionAggregate per question, in question order
    """
    ordered = sorted(questions, key=lambda q: q.order_index)
    known = {question.id for question in ordered}

    grouped: Dict[str, List[Answer]] = defaultdict(list)
    skipped = 0
    for answer in answers:
        if answer.question_id not in known:
            skipped += 1
            continue
        grouped[answer.question_id].append(answer)

    if skipped:
        logger.debug("Skipped %d answers to questions outside the survey", skipped)

    return [aggregate_question(grouped.get(question.id, []), question) for question in ordered]


# ---------------------------------------------------------------------------
# Frame steps
# ---------------------------------------------------------------------------

def _pooled(score_sum: float, valid_count: int) -> float:
    return float(score_sum) / valid_count if valid_count > 0 else 0.0


def valid_scores(data: SurveyData) -> pd.DataFrame:
    """
    The valid numeric answers of the answer frame.

    Returns:
        DataFrame with survey_id, program_id, response_id and a float ``score``
    """
    frame = data.answer_frame
    if frame is None:
        raise ValueError("Answer frame not found. Run assemble_answer_frame first.")

    mask = valid_score_mask(frame)
    scores = frame.loc[mask, ["survey_id", "program_id", "response_id", "numeric_value"]]
    return scores.rename(columns={"numeric_value": "score"}).astype({"score": float})


def calculate_survey_scores(data: SurveyData) -> SurveyData:
    """
    Per-survey response counts and pooled scores.

    Stores a ``survey_scores`` DataFrame (one row per survey, surveys frame
    order) with response_count, valid_count, score_sum and mean, where mean
    is 0 for surveys without valid answers.
    """
    scores = valid_scores(data)
    by_survey = scores.groupby("survey_id")["score"].agg(["count", "sum"])
    response_counts = data.responses.groupby("survey_id").size()

    columns = ["id", "title", "program_id"]
    if "survey_type" in data.surveys.columns:
        columns.append("survey_type")
    survey_scores = data.surveys[columns].rename(columns={"id": "survey_id"}).copy()

    survey_ids = survey_scores["survey_id"]
    survey_scores["response_count"] = survey_ids.map(response_counts).fillna(0).astype(int)
    survey_scores["valid_count"] = survey_ids.map(by_survey["count"]).fillna(0).astype(int)
    survey_scores["score_sum"] = survey_ids.map(by_survey["sum"]).fillna(0.0).astype(float)
    survey_scores["mean"] = [
        _pooled(total, count)
        for total, count in zip(survey_scores["score_sum"], survey_scores["valid_count"])
    ]

    data.set_result("survey_scores", survey_scores.reset_index(drop=True))
    return data


def calculate_program_satisfaction(data: SurveyData) -> SurveyData:
    """
    Program satisfaction as the mean of per-survey means.

    Surveys without valid answers are left out of the average instead of
    counting as 0. Stores ``program_satisfaction``: program_id -> float.
    """
    survey_scores = data.get_result("survey_scores")
    rated = survey_scores[survey_scores["valid_count"] > 0]

    satisfaction = {}
    for program_id in data.programs["id"]:
        means = rated.loc[rated["program_id"] == program_id, "mean"]
        satisfaction[program_id] = mean_of_means(means)

    data.set_result("program_satisfaction", satisfaction)
    return data


def calculate_course_satisfaction(data: SurveyData) -> SurveyData:
    """
    Course satisfaction as one pooled mean per course.

    Every valid answer of every response to every survey of the course's
    program linked to the course is averaged directly, so large surveys
    weigh more than small ones. Courses without valid answers are omitted.

    Stores ``course_satisfaction``: DataFrame with course_id, program_id,
    name, name_en, valid_count and mean, in courses frame order.
    """
    scores = valid_scores(data)
    links = data.survey_courses[["survey_id", "course_id"]]
    courses = data.courses.rename(columns={"id": "course_id", "program_id": "course_program_id"})

    linked = scores.merge(links, on="survey_id", how="inner")
    linked = linked.merge(courses[["course_id", "course_program_id"]], on="course_id", how="inner")
    linked = linked[linked["program_id"] == linked["course_program_id"]]
    by_course = linked.groupby("course_id")["score"].agg(["count", "sum"])

    rows = []
    for course in courses.itertuples(index=False):
        if course.course_id not in by_course.index:
            continue
        count = int(by_course.at[course.course_id, "count"])
        rows.append({
            "course_id": course.course_id,
            "program_id": course.course_program_id,
            "name": course.name,
            "name_en": course.name_en if isinstance(course.name_en, str) else None,
            "valid_count": count,
            "mean": _pooled(by_course.at[course.course_id, "sum"], count),
        })

    data.set_result("course_satisfaction", pd.DataFrame(
        rows, columns=["course_id", "program_id", "name", "name_en", "valid_count", "mean"]
    ))
    return data


def count_text_comments(data: SurveyData) -> SurveyData:
    """Store ``text_comments``: program_id -> number of non-empty text answers."""
    frame = data.answer_frame
    is_text = frame["question_type"] == "text"
    has_value = frame["value"].map(lambda v: isinstance(v, str) and bool(v.strip())).astype(bool)
    counts = frame.loc[is_text & has_value].groupby("program_id").size()

    data.set_result("text_comments", {
        program_id: int(counts.get(program_id, 0)) for program_id in data.programs["id"]
    })
    return data


def complaint_statuses(complaints: pd.DataFrame) -> pd.Series:
    """Complaint statuses, with missing or unknown values counted as pending."""
    statuses = complaints["status"]
    known = statuses.isin(config.COMPLAINT_STATUSES)
    unknown = statuses[~known & statuses.notna()]
    if len(unknown) > 0:
        logger.debug("%d complaints with unknown status counted as %s: %s",
                     len(unknown), config.DEFAULT_COMPLAINT_STATUS, sorted(set(unknown)))
    return statuses.where(known, config.DEFAULT_COMPLAINT_STATUS)


def bucket_statuses(statuses: pd.Series) -> ComplaintStats:
    """Count normalized statuses; resolved and closed both count as resolved."""
    return ComplaintStats(
        pending=int((statuses == "pending").sum()),
        in_progress=int((statuses == "in_progress").sum()),
        resolved=int(statuses.isin(config.RESOLVED_STATUSES).sum()),
    )


def summarize_complaints(data: SurveyData) -> SurveyData:
    """
    Bucket complaints by status per program.

    Every complaint lands in exactly one bucket (see complaint_statuses).
    Stores ``complaint_stats``: program_id -> ComplaintStats.
    """
    complaints = data.complaints
    statuses = complaint_statuses(complaints)

    summary = {}
    for program_id in data.programs["id"]:
        summary[program_id] = bucket_statuses(statuses[complaints["program_id"] == program_id])

    data.set_result("complaint_stats", summary)
    return data


def calculate_type_scores(data: SurveyData, program_ids: Sequence[str]) -> SurveyData:
    """
    Pooled score per (survey type, program).

    Scores of all same-typed surveys of a program are pooled. Survey types
    are listed in first-seen order (program order, then survey order).

    Stores:
        ``type_order``: list of survey types
        ``type_scores``: DataFrame with survey_type, program_id,
            survey_count, response_count, valid_count and mean; only pairs
            with at least one survey appear
    """
    survey_scores = data.get_result("survey_scores")
    if "survey_type" not in survey_scores.columns:
        raise ValueError("Survey types not found. Run add_survey_types first.")

    type_order: List[str] = []
    for program_id in program_ids:
        program_surveys = survey_scores[survey_scores["program_id"] == program_id]
        for survey_type in program_surveys["survey_type"]:
            if survey_type not in type_order:
                type_order.append(survey_type)

    grouped = survey_scores.groupby(["survey_type", "program_id"]).agg(
        survey_count=("survey_id", "count"),
        response_count=("response_count", "sum"),
        valid_count=("valid_count", "sum"),
        score_sum=("score_sum", "sum"),
    ).reset_index()
    grouped["mean"] = [
        _pooled(total, count) for total, count in zip(grouped["score_sum"], grouped["valid_count"])
    ]

    data.set_result("type_order", type_order)
    data.set_result("type_scores", grouped.drop(columns="score_sum"))
    return data


def calculate_program_overall(data: SurveyData, program_ids: Sequence[str]) -> SurveyData:
    """
    Pooled figures over all of each program's surveys.

    Stores:
        ``program_overall``: DataFrame indexed by program id (input order)
            with overall_mean, total_responses, total_surveys, valid_count
        ``program_samples``: program_id -> numpy array of its valid scores
    """
    survey_scores = data.get_result("survey_scores")
    scores = valid_scores(data)

    rows = []
    samples = {}
    for program_id in program_ids:
        program_surveys = survey_scores[survey_scores["program_id"] == program_id]
        valid_count = int(program_surveys["valid_count"].sum())
        rows.append({
            "program_id": program_id,
            "overall_mean": _pooled(program_surveys["score_sum"].sum(), valid_count),
            "total_responses": int(program_surveys["response_count"].sum()),
            "total_surveys": len(program_surveys),
            "valid_count": valid_count,
        })
        samples[program_id] = scores.loc[scores["program_id"] == program_id, "score"].to_numpy()

    overall = pd.DataFrame(
        rows, columns=["program_id", "overall_mean", "total_responses", "total_surveys", "valid_count"]
    ).set_index("program_id")

    data.set_result("program_overall", overall)
    data.set_result("program_samples", samples)
    return data
