"""
Typed records and derived result structures for Program Analytics

Entity records mirror single rows of the store tables. Derived structures
are rebuilt on every call and expose ``to_dict()`` with the camelCase keys
the presentation layer consumes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from . import config


# ---------------------------------------------------------------------------
# Entity records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Question:
    id: str
    type: str
    options: Any = None
    survey_id: Optional[str] = None
    text: str = ""
    order_index: int = 0

    @property
    def is_numeric(self) -> bool:
        return self.type in config.NUMERIC_QUESTION_TYPES

    @property
    def choices(self) -> List[str]:
        """Declared MCQ choices, from ``{"choices": [...]}`` or a plain list."""
        options = self.options
        if isinstance(options, dict):
            options = options.get("choices")
        if not isinstance(options, (list, tuple)):
            return []
        return [str(choice) for choice in options]


@dataclass(frozen=True)
class Answer:
    question_id: str
    numeric_value: Optional[float] = None
    value: Optional[str] = None
    response_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComparisonRequest:
    """Filters for one cross-program comparison."""
    program_ids: Sequence[str]
    academic_year: Optional[str]
    semester: Optional[str] = None


@dataclass(frozen=True)
class ProgramStatsRequest:
    """Optional survey filters for a program rollup."""
    academic_year: Optional[str] = None
    semester: Optional[str] = None


# ---------------------------------------------------------------------------
# Per-question statistics
# ---------------------------------------------------------------------------

@dataclass
class QuestionAggregate:
    question_id: str
    question_type: str
    mean: float = 0.0
    std_dev: float = 0.0
    response_count: int = 0
    distribution: Dict[Any, int] = field(default_factory=dict)
    answer_count: int = 0
    text_responses: List[str] = field(default_factory=list)
    text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "type": self.question_type,
            "text": self.text,
            "mean": self.mean,
            "stdDev": self.std_dev,
            "responseCount": self.response_count,
            "answerCount": self.answer_count,
            "distribution": dict(self.distribution),
            "textResponses": list(self.text_responses),
        }


@dataclass
class SurveyReport:
    survey_id: str
    title: str
    total_responses: int
    questions: List[QuestionAggregate]
    overall_mean: float
    overall_std_dev: float
    total_text_responses: int
    mean_level: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "surveyId": self.survey_id,
            "title": self.title,
            "totalResponses": self.total_responses,
            "overallMean": self.overall_mean,
            "overallStdDev": self.overall_std_dev,
            "totalTextResponses": self.total_text_responses,
            "meanLevel": self.mean_level,
            "questions": [q.to_dict() for q in self.questions],
        }


# ---------------------------------------------------------------------------
# Program rollup
# ---------------------------------------------------------------------------

@dataclass
class ComplaintStats:
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.in_progress + self.resolved

    @property
    def resolution_rate(self) -> int:
        if self.total == 0:
            return 0
        return int(round(self.resolved / self.total * 100))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pending": self.pending,
            "inProgress": self.in_progress,
            "resolved": self.resolved,
        }


@dataclass
class SurveyDetail:
    id: str
    title: str
    response_count: int
    avg_satisfaction: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "responseCount": self.response_count,
            "avgSatisfaction": self.avg_satisfaction,
        }


@dataclass
class CourseSatisfaction:
    id: str
    name: str
    average_satisfaction: float
    name_en: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "nameEn": self.name_en,
            "averageSatisfaction": self.average_satisfaction,
        }


@dataclass
class ComplaintDetail:
    id: str
    subject: str
    status: str
    created_at: Optional[datetime]
    complainant_type: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else "",
            "complainantType": self.complainant_type,
        }


@dataclass
class RecommendationDetail:
    report_id: str
    survey_id: str
    survey_title: str
    recommendations_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "surveyId": self.survey_id,
            "surveyTitle": self.survey_title,
            "recommendationsText": self.recommendations_text,
        }


@dataclass
class ProgramStats:
    program_id: str
    program_name: str
    total_responses: int
    average_satisfaction: float
    total_surveys: int
    text_comments_count: int
    complaint_stats: ComplaintStats
    course_satisfaction: List[CourseSatisfaction]
    survey_details: List[SurveyDetail]
    complaint_details: List[ComplaintDetail]
    recommendations: List[RecommendationDetail] = field(default_factory=list)
    program_name_en: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programId": self.program_id,
            "programName": self.program_name,
            "programNameEn": self.program_name_en,
            "totalResponses": self.total_responses,
            "averageSatisfaction": self.average_satisfaction,
            "totalSurveys": self.total_surveys,
            "textCommentsCount": self.text_comments_count,
            "complaintStats": self.complaint_stats.to_dict(),
            "resolutionRate": self.complaint_stats.resolution_rate,
            "courseSatisfaction": [c.to_dict() for c in self.course_satisfaction],
            "surveyDetails": [s.to_dict() for s in self.survey_details],
            "complaintDetails": [c.to_dict() for c in self.complaint_details],
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


@dataclass
class DashboardSummary:
    programs: List[ProgramStats]

    @property
    def total_programs(self) -> int:
        return len(self.programs)

    @property
    def total_responses(self) -> int:
        return sum(p.total_responses for p in self.programs)

    @property
    def avg_satisfaction(self) -> float:
        # plain mean of program averages, programs without data count as 0
        if not self.programs:
            return 0.0
        return sum(p.average_satisfaction for p in self.programs) / len(self.programs)

    @property
    def total_complaints(self) -> int:
        return sum(p.complaint_stats.total for p in self.programs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPrograms": self.total_programs,
            "totalResponses": self.total_responses,
            "avgSatisfaction": self.avg_satisfaction,
            "totalComplaints": self.total_complaints,
            "programs": [p.to_dict() for p in self.programs],
        }


@dataclass
class ComplaintBreakdown:
    program_id: Optional[str]
    total: int
    status: ComplaintStats
    by_type: Dict[str, int]
    by_month: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programId": self.program_id,
            "total": self.total,
            "status": self.status.to_dict(),
            "resolutionRate": self.status.resolution_rate,
            "byType": dict(self.by_type),
            "byMonth": dict(self.by_month),
        }


# ---------------------------------------------------------------------------
# Cross-program comparison
# ---------------------------------------------------------------------------

@dataclass
class ProgramCell:
    program_id: str
    average_score: float
    response_count: int
    exists: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programId": self.program_id,
            "averageScore": self.average_score,
            "responseCount": self.response_count,
            "exists": self.exists,
        }


@dataclass
class SurveyTypeRow:
    title: str
    program_data: List[ProgramCell]

    def cell(self, program_id: str) -> ProgramCell:
        for cell in self.program_data:
            if cell.program_id == program_id:
                return cell
        raise KeyError(program_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "programData": [c.to_dict() for c in self.program_data],
        }


@dataclass
class ProgramOverall:
    program_id: str
    program_name: str
    overall_mean: float
    total_responses: int
    total_surveys: int
    satisfaction_rate: float
    confidence_vs_best: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programId": self.program_id,
            "programName": self.program_name,
            "overallMean": self.overall_mean,
            "totalResponses": self.total_responses,
            "totalSurveys": self.total_surveys,
            "satisfactionRate": self.satisfaction_rate,
            "confidenceVsBest": self.confidence_vs_best,
        }


@dataclass
class ComparisonResult:
    academic_year: str
    semester: Optional[str]
    survey_types: List[SurveyTypeRow]
    overall: List[ProgramOverall]
    best_program_id: Optional[str]

    def overall_for(self, program_id: str) -> ProgramOverall:
        for entry in self.overall:
            if entry.program_id == program_id:
                return entry
        raise KeyError(program_id)

    def score_matrix(self) -> pd.DataFrame:
        """
        Type x program matrix of average scores.

        Cells for programs without a survey of that type are NaN, so a
        missing survey never reads as a score of 0.
        """
        program_ids = [entry.program_id for entry in self.overall]
        rows = {}
        for row in self.survey_types:
            rows[row.title] = [
                cell.average_score if cell.exists else np.nan
                for cell in row.program_data
            ]
        return pd.DataFrame.from_dict(rows, orient="index", columns=program_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "academicYear": self.academic_year,
            "semester": self.semester,
            "surveyTypes": [row.to_dict() for row in self.survey_types],
            "overall": [entry.to_dict() for entry in self.overall],
            "bestProgramId": self.best_program_id,
        }
