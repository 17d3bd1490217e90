"""
Shared test data for Program Analytics

Three programs with hand-checkable figures:

- A (Computer Science): course evaluations s1 (10 responses scoring 4) and
  s2 (2 responses scoring 2), plus an older facilities survey s5 (3
  responses scoring 1, academic year 2023-2024)
- B (Mathematics): course evaluation s3 (5 responses scoring 3) and a
  student satisfaction survey s4 nobody answered
- C (Statistics): course evaluation s6, identical in figures to s3

One answer of s3 refers to a question of s1 and must be ignored.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine

from program_analytics.pipeline import SurveyData
from program_analytics.store import metadata

YEAR = "2024-2025"


def _responses(survey_id, count):
    return [
        {"id": f"{survey_id}-r{i}", "survey_id": survey_id, "submitted_at": datetime(2025, 3, 1)}
        for i in range(count)
    ]


def _scores(question_id, responses, score):
    return [
        {
            "id": f"{response['id']}-{question_id}",
            "response_id": response["id"],
            "question_id": question_id,
            "numeric_value": score,
            "value": None,
        }
        for response in responses
    ]


def build_records():
    r1 = _responses("s1", 10)
    r2 = _responses("s2", 2)
    r3 = _responses("s3", 5)
    r5 = _responses("s5", 3)
    r6 = _responses("s6", 5)

    text_answers = [
        {"id": "t1", "response_id": "s1-r0", "question_id": "q1t", "numeric_value": None,
         "value": "Great labs"},
        {"id": "t2", "response_id": "s1-r1", "question_id": "q1t", "numeric_value": None,
         "value": "   "},
        {"id": "t3", "response_id": "s1-r2", "question_id": "q1t", "numeric_value": None,
         "value": "More office hours"},
    ]
    orphan = [
        {"id": "orphan", "response_id": "s3-r0", "question_id": "q1", "numeric_value": 1,
         "value": None},
    ]

    return {
        "programs": [
            {"id": "A", "name": "Computer Science", "name_en": "Computer Science"},
            {"id": "B", "name": "Mathematics", "name_en": None},
            {"id": "C", "name": "Statistics", "name_en": None},
        ],
        "surveys": [
            {"id": "s1", "title": "تقييم المقرر الدراسي", "program_id": "A",
             "academic_year": YEAR, "semester": "first", "created_at": datetime(2024, 10, 1)},
            {"id": "s3", "title": "تقييم المقرر الدراسي", "program_id": "B",
             "academic_year": YEAR, "semester": "first", "created_at": datetime(2024, 10, 2)},
            {"id": "s6", "title": " تقييم المقرر الدراسي ", "program_id": "C",
             "academic_year": YEAR, "semester": "first", "created_at": datetime(2024, 10, 3)},
            {"id": "s2", "title": "Course Evaluation - Lab", "program_id": "A",
             "academic_year": YEAR, "semester": "first", "created_at": datetime(2024, 10, 5)},
            {"id": "s4", "title": "استبيان رضا الطلاب", "program_id": "B",
             "academic_year": YEAR, "semester": "second", "created_at": datetime(2024, 11, 1)},
            {"id": "s5", "title": "تقييم المرافق والخدمات", "program_id": "A",
             "academic_year": "2023-2024", "semester": "second",
             "created_at": datetime(2023, 10, 1)},
        ],
        "questions": [
            {"id": "q1", "survey_id": "s1", "text": "Overall course quality", "type": "likert",
             "options": None, "order_index": 1},
            {"id": "q1t", "survey_id": "s1", "text": "Comments", "type": "text",
             "options": None, "order_index": 2},
            {"id": "q2", "survey_id": "s2", "text": "Lab quality", "type": "rating",
             "options": None, "order_index": 1},
            {"id": "q3", "survey_id": "s3", "text": "Overall course quality", "type": "likert",
             "options": None, "order_index": 1},
            {"id": "q4", "survey_id": "s4", "text": "Overall satisfaction", "type": "likert",
             "options": None, "order_index": 1},
            {"id": "q5", "survey_id": "s5", "text": "Facilities", "type": "likert",
             "options": None, "order_index": 1},
            {"id": "q6", "survey_id": "s6", "text": "Overall course quality", "type": "likert",
             "options": None, "order_index": 1},
        ],
        "responses": r1 + r2 + r3 + r5 + r6,
        "answers": (
            _scores("q1", r1, 4) + _scores("q2", r2, 2) + _scores("q3", r3, 3)
            + _scores("q5", r5, 1) + _scores("q6", r6, 3) + text_answers + orphan
        ),
        "complaints": [
            {"id": "c1", "program_id": "A", "subject": "Lab access", "status": "pending",
             "type": "academic", "complainant_type": "student",
             "created_at": datetime(2026, 9, 10)},
            {"id": "c2", "program_id": "A", "subject": "Portal down", "status": "in_progress",
             "type": "technical", "complainant_type": "student",
             "created_at": datetime(2026, 8, 1)},
            {"id": "c3", "program_id": "A", "subject": "Grading", "status": "resolved",
             "type": "academic", "complainant_type": "student",
             "created_at": datetime(2026, 10, 2)},
            {"id": "c4", "program_id": "A", "subject": "Schedule", "status": "closed",
             "type": "administrative", "complainant_type": "faculty",
             "created_at": datetime(2025, 12, 1)},
            {"id": "c5", "program_id": "A", "subject": "Other", "status": None,
             "type": None, "complainant_type": None,
             "created_at": datetime(2026, 7, 15)},
            {"id": "c6", "program_id": "B", "subject": "Library hours", "status": "pending",
             "type": "administrative", "complainant_type": "student",
             "created_at": datetime(2026, 10, 10)},
        ],
        "courses": [
            {"id": "CS101", "program_id": "A", "name": "Programming I", "name_en": "Programming I"},
            {"id": "MATH1", "program_id": "B", "name": "Calculus", "name_en": None},
            {"id": "CSX", "program_id": "A", "name": "Cross-listed", "name_en": None},
        ],
        "survey_courses": [
            {"survey_id": "s1", "course_id": "CS101"},
            {"survey_id": "s2", "course_id": "CS101"},
            {"survey_id": "s3", "course_id": "MATH1"},
            {"survey_id": "s3", "course_id": "CSX"},
        ],
        "reports": [
            {"id": "rep1", "survey_id": "s1", "recommendations_text": "Add practical sessions"},
            {"id": "rep2", "survey_id": "s2", "recommendations_text": "   "},
        ],
    }


@pytest.fixture
def records():
    return build_records()


@pytest.fixture
def survey_data(records):
    return SurveyData.from_records(**records)


@pytest.fixture
def db_url(tmp_path, records):
    """File-backed SQLite store seeded with the shared records."""
    path = tmp_path / "quality.db"
    engine = create_engine(f"sqlite:///{path}")
    metadata.create_all(engine)
    with engine.begin() as conn:
        for table in metadata.sorted_tables:
            rows = records.get(table.name)
            if rows:
                conn.execute(table.insert(), rows)
    engine.dispose()
    return f"sqlite+aiosqlite:///{path}"
