"""
Report generation steps for the analytics pipeline

This module turns the frames computed by the statistics steps into the
typed structures handed to the presentation layer: program stats, the
cross-program comparison, the per-survey report and the complaint
breakdown.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .. import config
from ..models import (
    Answer, ComparisonRequest, ComplaintBreakdown, ComplaintDetail,
    ComplaintStats, ComparisonResult, CourseSatisfaction, ProgramCell,
    ProgramOverall, ProgramStats, Question, RecommendationDetail,
    SurveyDetail, SurveyReport, SurveyTypeRow,
)
from ..pipeline import SurveyData
from ..utils.stats_helpers import (
    mean_level, round_mean, satisfaction_rate, welch_confidence
)
from .statistics import aggregate_survey_questions, bucket_statuses, complaint_statuses

logger = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _timestamp(value: Any) -> Optional[datetime]:
    parsed = pd.to_datetime(value, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def _program_names(data: SurveyData) -> Dict[str, str]:
    return {
        row.id: _text(row.name) or ""
        for row in data.programs.itertuples(index=False)
    }


# ---------------------------------------------------------------------------
# Program rollup
# ---------------------------------------------------------------------------

def _complaint_details(complaints: pd.DataFrame) -> List[ComplaintDetail]:
    complaints = complaints.assign(
        _created=pd.to_datetime(complaints["created_at"], errors="coerce", utc=True)
    ).sort_values("_created", ascending=False, na_position="last", kind="stable")

    return [
        ComplaintDetail(
            id=row.id,
            subject=_text(row.subject) or "",
            status=_text(row.status) or config.DEFAULT_COMPLAINT_STATUS,
            created_at=_timestamp(row.created_at),
            complainant_type=_text(row.complainant_type),
        )
        for row in complaints.itertuples(index=False)
    ]


def _recommendations(data: SurveyData, program_surveys: pd.DataFrame) -> List[RecommendationDetail]:
    titles = dict(zip(program_surveys["survey_id"], program_surveys["title"]))
    details = []
    for report in data.reports.itertuples(index=False):
        text = _text(report.recommendations_text)
        if report.survey_id not in titles or not text or not text.strip():
            continue
        details.append(RecommendationDetail(
            report_id=report.id,
            survey_id=report.survey_id,
            survey_title=titles[report.survey_id],
            recommendations_text=text,
        ))
    return details


def build_program_reports(data: SurveyData) -> SurveyData:
    """
    Assemble one ProgramStats per program of the state.

    Requires the survey, program, course, text comment and complaint steps
    to have run. Stores ``program_stats`` (list, programs frame order).
    """
    survey_scores = data.get_result("survey_scores")
    satisfaction = data.get_result("program_satisfaction")
    course_scores = data.get_result("course_satisfaction")
    text_comments = data.get_result("text_comments")
    complaint_stats = data.get_result("complaint_stats")

    program_stats = []
    for program in data.programs.itertuples(index=False):
        program_surveys = survey_scores[survey_scores["program_id"] == program.id]
        program_courses = course_scores[course_scores["program_id"] == program.id]
        complaints = data.complaints[data.complaints["program_id"] == program.id]

        program_stats.append(ProgramStats(
            program_id=program.id,
            program_name=_text(program.name) or "",
            program_name_en=_text(program.name_en),
            total_responses=int(program_surveys["response_count"].sum()),
            average_satisfaction=satisfaction.get(program.id, 0.0),
            total_surveys=len(program_surveys),
            text_comments_count=text_comments.get(program.id, 0),
            complaint_stats=complaint_stats.get(program.id, ComplaintStats()),
            course_satisfaction=[
                CourseSatisfaction(
                    id=row.course_id,
                    name=_text(row.name) or "",
                    name_en=row.name_en,
                    average_satisfaction=row.mean,
                )
                for row in program_courses.itertuples(index=False)
            ],
            survey_details=[
                SurveyDetail(
                    id=row.survey_id,
                    title=_text(row.title) or "",
                    response_count=int(row.response_count),
                    avg_satisfaction=float(row.mean),
                )
                for row in program_surveys.itertuples(index=False)
            ],
            complaint_details=_complaint_details(complaints),
            recommendations=_recommendations(data, program_surveys),
        ))

    data.set_result("program_stats", program_stats)
    return data


# ---------------------------------------------------------------------------
# Cross-program comparison
# ---------------------------------------------------------------------------

def select_best_program(overall_means: Sequence[Tuple[str, float]]) -> Optional[str]:
    """
    The program with strictly the greatest overall mean.

    Args:
        overall_means: (program_id, unrounded pooled mean) pairs in input order

    Returns:
        The first program holding the maximum. Exception to the tie rule:
        a mean of 0 means no valid score at all, so such programs never
        win and None is returned when every program has mean 0.
    """
    best_id = None
    best_mean = 0.0
    for program_id, mean in overall_means:
        if mean > best_mean:
            best_id = program_id
            best_mean = mean
    return best_id


def build_comparison_result(data: SurveyData, request: ComparisonRequest) -> SurveyData:
    """
    Build the type x program matrix and per-program overall figures.

    A program without a survey of some type gets an ``exists=False`` cell
    rather than a score of 0. Stores ``comparison`` (ComparisonResult).
    """
    type_order = data.get_result("type_order", default=[])
    type_scores = data.get_result("type_scores")
    program_overall = data.get_result("program_overall")
    samples = data.get_result("program_samples")
    names = _program_names(data)
    program_ids = list(request.program_ids)

    indexed = type_scores.set_index(["survey_type", "program_id"])
    survey_types = []
    for survey_type in type_order:
        cells = []
        for program_id in program_ids:
            key = (survey_type, program_id)
            if key not in indexed.index:
                cells.append(ProgramCell(program_id, 0.0, 0, exists=False))
                continue
            cell = indexed.loc[key]
            cells.append(ProgramCell(
                program_id=program_id,
                average_score=round_mean(cell["mean"]),
                response_count=int(cell["response_count"]),
                exists=True,
            ))
        survey_types.append(SurveyTypeRow(title=survey_type, program_data=cells))

    overall = []
    for program_id in program_ids:
        figures = program_overall.loc[program_id]
        overall.append(ProgramOverall(
            program_id=program_id,
            program_name=names.get(program_id, ""),
            overall_mean=round_mean(figures["overall_mean"]),
            total_responses=int(figures["total_responses"]),
            total_surveys=int(figures["total_surveys"]),
            satisfaction_rate=satisfaction_rate(figures["overall_mean"]),
        ))

    # rounding is for display only; ranking uses the unrounded means
    best_program_id = select_best_program([
        (program_id, float(program_overall.at[program_id, "overall_mean"]))
        for program_id in program_ids
    ])
    if best_program_id is not None:
        for entry in overall:
            if entry.program_id != best_program_id:
                entry.confidence_vs_best = welch_confidence(
                    samples[entry.program_id], samples[best_program_id]
                )

    data.set_result("comparison", ComparisonResult(
        academic_year=request.academic_year,
        semester=request.semester,
        survey_types=survey_types,
        overall=overall,
        best_program_id=best_program_id,
    ))
    return data


# ---------------------------------------------------------------------------
# Survey report
# ---------------------------------------------------------------------------

def question_records(questions: pd.DataFrame) -> List[Question]:
    return [
        Question(
            id=row.id,
            type=row.type,
            options=row.options,
            survey_id=row.survey_id,
            text=_text(row.text) or "",
            order_index=int(row.order_index) if pd.notna(row.order_index) else 0,
        )
        for row in questions.itertuples(index=False)
    ]


def answer_records(answers: pd.DataFrame) -> List[Answer]:
    return [
        Answer(
            question_id=row.question_id,
            numeric_value=row.numeric_value if pd.notna(row.numeric_value) else None,
            value=_text(row.value),
            response_id=row.response_id,
        )
        for row in answers.itertuples(index=False)
    ]


def build_survey_report(data: SurveyData, survey_id: str) -> SurveyData:
    """
    Per-question statistics and summary figures of one survey.

    The overall mean and overall standard deviation are plain averages of
    the likert/rating questions' own means and standard deviations;
    questions without valid answers contribute 0.

    Stores ``survey_report`` (SurveyReport).
    """
    survey = data.surveys[data.surveys["id"] == survey_id].iloc[0]
    response_ids = set(data.responses.loc[data.responses["survey_id"] == survey_id, "id"])
    questions = question_records(data.questions[data.questions["survey_id"] == survey_id])
    answers = answer_records(data.answers[data.answers["response_id"].isin(response_ids)])

    aggregates = aggregate_survey_questions(questions, answers)
    numeric = [a for a in aggregates if a.question_type in config.NUMERIC_QUESTION_TYPES]
    text = [a for a in aggregates if a.question_type == "text"]

    overall_mean = sum(a.mean for a in numeric) / len(numeric) if numeric else 0.0
    # mean of per-question deviations, not the deviation of pooled answers
    overall_std_dev = sum(a.std_dev for a in numeric) / len(numeric) if numeric else 0.0

    data.set_result("survey_report", SurveyReport(
        survey_id=survey_id,
        title=_text(survey["title"]) or "",
        total_responses=len(response_ids),
        questions=aggregates,
        overall_mean=overall_mean,
        overall_std_dev=overall_std_dev,
        total_text_responses=sum(len(a.text_responses) for a in text),
        mean_level=mean_level(overall_mean),
    ))
    return data


# ---------------------------------------------------------------------------
# Complaint breakdown
# ---------------------------------------------------------------------------

def build_complaint_breakdown(
    data: SurveyData,
    program_id: Optional[str] = None,
    reference_date: Optional[date] = None,
    months: Optional[int] = None,
) -> SurveyData:
    """
    Complaint counts by status, type and recent month.

    Args:
        data: Analysis state with complaints loaded
        program_id: Restrict to one program (default: all complaints)
        reference_date: Date whose month is the last trend month (default: today)
        months: Number of trend months (default: config.COMPLAINT_TREND_MONTHS)

    Stores ``complaint_breakdown`` (ComplaintBreakdown).
    """
    if reference_date is None:
        reference_date = date.today()
    if months is None:
        months = config.COMPLAINT_TREND_MONTHS

    complaints = data.complaints
    if program_id is not None:
        complaints = complaints[complaints["program_id"] == program_id]

    status = bucket_statuses(complaint_statuses(complaints))

    types = complaints["type"].where(complaints["type"].notna(), "other")
    type_counts = types.value_counts()
    by_type = {t: int(type_counts[t]) for t in config.COMPLAINT_TYPES if t in type_counts.index}
    for t, count in type_counts.items():
        if t not in by_type:
            by_type[t] = int(count)

    current = pd.Period(reference_date, freq="M")
    by_month = {(current - i).strftime("%Y-%m"): 0 for i in range(months - 1, -1, -1)}
    created = pd.to_datetime(complaints["created_at"], errors="coerce", utc=True)
    for key in created.dropna().dt.strftime("%Y-%m"):
        if key in by_month:
            by_month[key] += 1

    data.set_result("complaint_breakdown", ComplaintBreakdown(
        program_id=program_id,
        total=len(complaints),
        status=status,
        by_type=by_type,
        by_month=by_month,
    ))
    return data
