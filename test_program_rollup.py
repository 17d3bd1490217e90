"""
Tests for the per-program rollup, the survey report and the complaint
breakdown, run on in-memory data.
"""

from datetime import date, datetime

import pytest

from conftest import YEAR
from program_analytics.main import run_complaint_breakdown, run_program_rollup, run_survey_report
from program_analytics.models import DashboardSummary, ProgramStatsRequest
from program_analytics.pipeline import SurveyData
from program_analytics.steps.validation import scope_program_ids
from program_analytics.utils.errors import NotFoundError, ValidationError


@pytest.fixture
def rollup(survey_data):
    stats = run_program_rollup(survey_data, ProgramStatsRequest(academic_year=YEAR))
    return {entry.program_id: entry for entry in stats}


def test_average_satisfaction_is_mean_of_survey_means(rollup):
    # s1 averages 4.0 over 10 responses, s2 2.0 over 2 responses
    assert rollup["A"].average_satisfaction == pytest.approx(3.0)


def test_course_satisfaction_pools_all_answers(rollup):
    courses = {c.id: c for c in rollup["A"].course_satisfaction}

    assert courses["CS101"].average_satisfaction == pytest.approx(44 / 12)
    assert courses["CS101"].average_satisfaction != pytest.approx(rollup["A"].average_satisfaction)


def test_courses_without_own_program_data_are_omitted(rollup):
    # CSX belongs to A but is only linked to a survey of B
    assert [c.id for c in rollup["A"].course_satisfaction] == ["CS101"]
    assert [c.id for c in rollup["B"].course_satisfaction] == ["MATH1"]


def test_surveys_without_scores_are_excluded_from_program_average(rollup):
    b = rollup["B"]

    # s4 has no responses at all; only s3 (mean 3.0) counts
    assert b.average_satisfaction == pytest.approx(3.0)
    assert b.total_surveys == 2
    assert {s.id: s.avg_satisfaction for s in b.survey_details} == {"s3": 3.0, "s4": 0.0}


def test_orphaned_answers_do_not_count(rollup):
    s3 = next(s for s in rollup["B"].survey_details if s.id == "s3")
    assert s3.avg_satisfaction == 3.0
    assert s3.response_count == 5


def test_totals_and_text_comments(rollup):
    a = rollup["A"]

    assert a.total_responses == 12
    assert a.total_surveys == 2
    assert a.text_comments_count == 2


def test_complaint_stats_buckets(rollup):
    stats = rollup["A"].complaint_stats

    assert (stats.pending, stats.in_progress, stats.resolved) == (2, 1, 2)
    assert stats.total == 5
    assert stats.resolution_rate == 40


def test_complaint_details_newest_first(rollup):
    details = rollup["A"].complaint_details

    assert [c.id for c in details] == ["c3", "c1", "c2", "c5", "c4"]
    assert details[3].status == "pending"


def test_recommendations_skip_blank_text(rollup):
    recommendations = rollup["A"].recommendations

    assert len(recommendations) == 1
    assert recommendations[0].survey_id == "s1"
    assert recommendations[0].recommendations_text == "Add practical sessions"


def test_rollup_without_year_includes_every_survey(survey_data):
    stats = {s.program_id: s for s in run_program_rollup(survey_data)}

    assert stats["A"].average_satisfaction == pytest.approx((4.0 + 2.0 + 1.0) / 3)
    assert stats["A"].total_surveys == 3
    assert stats["A"].total_responses == 15


def test_program_without_surveys_reports_zeros(survey_data):
    stats = run_program_rollup(survey_data, ProgramStatsRequest(academic_year="2019-2020"))

    for entry in stats:
        assert entry.average_satisfaction == 0.0
        assert entry.total_responses == 0
        assert entry.survey_details == []


def test_rollup_does_not_mutate_input(survey_data):
    surveys_before = survey_data.surveys.copy()

    run_program_rollup(survey_data, ProgramStatsRequest(academic_year=YEAR))

    assert survey_data.answer_frame is None
    assert survey_data.results == {}
    assert survey_data.surveys.equals(surveys_before)


def test_to_dict_uses_presentation_keys(rollup):
    payload = rollup["A"].to_dict()

    assert payload["averageSatisfaction"] == pytest.approx(3.0)
    assert payload["complaintStats"] == {"pending": 2, "inProgress": 1, "resolved": 2}
    assert payload["resolutionRate"] == 40
    assert payload["courseSatisfaction"][0]["id"] == "CS101"


class TestDashboard:
    def test_privileged_roles_see_every_program(self):
        assert scope_program_ids("admin", [], ["A", "B", "C"]) == ["A", "B", "C"]
        assert scope_program_ids("dean", ["B"], ["A", "B", "C"]) == ["A", "B", "C"]

    def test_scoped_roles_see_assigned_programs_only(self):
        assert scope_program_ids("coordinator", ["C", "A", "Z"], ["A", "B", "C"]) == ["A", "C"]
        assert scope_program_ids("faculty", [], ["A", "B"]) == []

    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValidationError):
            scope_program_ids("guest", [], ["A"])

    def test_summary_figures(self, survey_data):
        summary = DashboardSummary(programs=run_program_rollup(survey_data))

        assert summary.total_programs == 3
        assert summary.total_responses == 15 + 5 + 5
        assert summary.total_complaints == 6
        assert summary.avg_satisfaction == pytest.approx(((7 / 3) + 3.0 + 3.0) / 3)

    def test_empty_summary(self):
        summary = DashboardSummary(programs=[])
        assert summary.avg_satisfaction == 0.0
        assert summary.to_dict()["totalPrograms"] == 0


class TestSurveyReport:
    @pytest.fixture
    def report_data(self):
        return SurveyData.from_records(
            surveys=[{"id": "s9", "title": "تقييم أساليب التدريس", "program_id": "A"}],
            questions=[
                {"id": "qa", "survey_id": "s9", "text": "Clarity", "type": "likert",
                 "order_index": 1},
                {"id": "qb", "survey_id": "s9", "text": "Pace", "type": "rating",
                 "order_index": 2},
                {"id": "qc", "survey_id": "s9", "text": "Format", "type": "mcq",
                 "options": {"choices": ["Online", "On campus"]}, "order_index": 3},
                {"id": "qd", "survey_id": "s9", "text": "Comments", "type": "text",
                 "order_index": 4},
            ],
            responses=[{"id": "r1", "survey_id": "s9"}, {"id": "r2", "survey_id": "s9"}],
            answers=[
                {"id": "a1", "response_id": "r1", "question_id": "qa", "numeric_value": 4},
                {"id": "a2", "response_id": "r2", "question_id": "qa", "numeric_value": 5},
                {"id": "a3", "response_id": "r1", "question_id": "qc", "value": "Online"},
                {"id": "a4", "response_id": "r1", "question_id": "qd", "value": "Clear slides"},
                {"id": "a5", "response_id": "r2", "question_id": "qd", "value": ""},
            ],
        )

    def test_overall_figures_average_question_figures(self, report_data):
        report = run_survey_report(report_data, "s9")

        # qa: mean 4.5, std 0.5; qb has no answers and counts as 0
        assert report.overall_mean == pytest.approx(2.25)
        assert report.overall_std_dev == pytest.approx(0.25)
        assert report.mean_level == "weak"

    def test_question_details(self, report_data):
        report = run_survey_report(report_data, "s9")
        by_id = {q.question_id: q for q in report.questions}

        assert [q.question_id for q in report.questions] == ["qa", "qb", "qc", "qd"]
        assert by_id["qa"].distribution == {1: 0, 2: 0, 3: 0, 4: 1, 5: 1}
        assert by_id["qc"].distribution == {"Online": 1, "On campus": 0}
        assert report.total_text_responses == 1
        assert report.total_responses == 2

    def test_unknown_survey(self, report_data):
        with pytest.raises(NotFoundError):
            run_survey_report(report_data, "missing")


class TestComplaintBreakdown:
    def test_breakdown_for_all_programs(self, survey_data):
        breakdown = run_complaint_breakdown(survey_data, reference_date=date(2026, 10, 19))

        assert breakdown.total == 6
        assert breakdown.status.resolved == 2
        assert breakdown.by_type == {"academic": 2, "administrative": 2, "technical": 1, "other": 1}
        assert breakdown.by_month == {
            "2026-05": 0, "2026-06": 0, "2026-07": 1,
            "2026-08": 1, "2026-09": 1, "2026-10": 2,
        }

    def test_breakdown_for_one_program(self, survey_data):
        breakdown = run_complaint_breakdown(survey_data, program_id="B",
                                            reference_date=date(2026, 10, 19))

        assert breakdown.total == 1
        assert breakdown.status.pending == 1
        assert breakdown.by_type == {"administrative": 1}
        assert sum(breakdown.by_month.values()) == 1

    def test_unknown_status_counts_as_pending(self, records):
        records["complaints"].append(
            {"id": "c7", "program_id": "B", "subject": "Room change", "status": "escalated",
             "type": "administrative", "complainant_type": "student",
             "created_at": datetime(2026, 10, 5)}
        )
        data = SurveyData.from_records(**records)

        breakdown = run_complaint_breakdown(data, program_id="B",
                                            reference_date=date(2026, 10, 19))
        assert breakdown.total == breakdown.status.total == 2
        assert breakdown.status.pending == 2

        stats = {p.program_id: p for p in run_program_rollup(data)}["B"].complaint_stats
        assert (stats.pending, stats.in_progress, stats.resolved) == (2, 0, 0)
