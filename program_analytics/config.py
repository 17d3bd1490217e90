"""
Configuration module for Program Analytics

This module contains all configuration constants, settings, and parameters
used throughout the aggregation and comparison pipelines. Deployment values
can be overridden through environment variables; everything else is meant
to be edited here rather than in the core logic.
"""

import os

# ============================================================================
# STORE CONNECTION
# ============================================================================
# Async SQLAlchemy URL of the response store (read-only access)
DATABASE_URL = os.getenv(
    "PROGRAM_ANALYTICS_DATABASE_URL", "sqlite+aiosqlite:///quality.db"
).strip()

# Upper bound for one store-facing operation, in seconds
STORE_TIMEOUT_SECONDS = float(os.getenv("PROGRAM_ANALYTICS_STORE_TIMEOUT", "30"))

# Fetch per-program data concurrently (results are merged in input order)
PARALLEL_PROGRAM_FETCH = os.getenv(
    "PROGRAM_ANALYTICS_PARALLEL_FETCH", "1"
).strip().lower() not in ("0", "false", "no")

# ============================================================================
# SCORE SCALE
# ============================================================================
MIN_SCORE = 1
MAX_SCORE = 5
SCORE_LEVELS = list(range(MIN_SCORE, MAX_SCORE + 1))  # distribution buckets

# Question types eligible for numeric aggregation
NUMERIC_QUESTION_TYPES = ("likert", "rating")

# Mean level bands (lower bound, neutral label), checked top-down
MEAN_LEVEL_BANDS = [
    (4.5, "excellent"),
    (3.5, "very_good"),
    (2.5, "average"),
    (1.5, "weak"),
]
LOWEST_MEAN_LEVEL = "very_weak"

# ============================================================================
# SURVEY CLASSIFICATION
# ============================================================================
# Ordered priority list: the first rule with a keyword found in the trimmed
# title wins. Matching is case sensitive. Titles matching no rule keep their
# own trimmed title as label.
SURVEY_TYPE_RULES = [
    {"keywords": ["تقييم المقرر", "المقرر الدراسي", "Course Evaluation"],
     "label": "Course Evaluation"},
    {"keywords": ["أعضاء هيئة التدريس", "Faculty"],
     "label": "Faculty Evaluation"},
    {"keywords": ["أساليب التدريس", "طرق التدريس", "Teaching"],
     "label": "Teaching Methods"},
    {"keywords": ["جودة البرنامج", "البرنامج الأكاديمي", "Program Quality"],
     "label": "Program Quality"},
    {"keywords": ["المرافق", "الخدمات", "Facilities", "Services"],
     "label": "Facilities and Services"},
    {"keywords": ["رضا الطلاب", "رضا الطلبة", "Student Satisfaction"],
     "label": "Student Satisfaction"},
    {"keywords": ["الخريجين", "Alumni", "Graduate"],
     "label": "Alumni"},
    {"keywords": ["جهات التوظيف", "أصحاب العمل", "Employer"],
     "label": "Employers"},
]

# ============================================================================
# COMPLAINTS
# ============================================================================
COMPLAINT_STATUSES = ("pending", "in_progress", "resolved", "closed")
RESOLVED_STATUSES = ("resolved", "closed")  # both count as resolved
COMPLAINT_TYPES = ("academic", "administrative", "technical", "other")
DEFAULT_COMPLAINT_STATUS = "pending"
COMPLAINT_TREND_MONTHS = 6

# ============================================================================
# ROLES
# ============================================================================
PRIVILEGED_ROLES = ("admin", "dean")  # see every program
SCOPED_ROLES = ("coordinator", "program_manager", "faculty")

# ============================================================================
# COMPARISON
# ============================================================================
MIN_PROGRAMS_TO_COMPARE = 2

# ============================================================================
# ERROR HANDLING
# ============================================================================
ERROR_SEPARATOR = "=" * 60

WARN_ON_INVALID_VALUES = True  # Warn about out-of-range numeric answers
WARN_ON_ORPHANED_ANSWERS = True  # Warn about answers to unknown questions
FAIL_ON_MISSING_COLUMNS = True  # Raise if a store frame lacks columns

# ============================================================================
# OUTPUT FORMATTING
# ============================================================================
DECIMAL_PLACES = 2  # Decimal places for reported means
PERCENTAGE_DECIMAL_PLACES = 1  # Decimal places for percentages

# ============================================================================
# PIPELINE SETTINGS
# ============================================================================
CAPTURE_INTERMEDIATES_DEFAULT = False  # Keep answer frame after each step
VERBOSE_PIPELINE = False  # Log step progress at INFO instead of DEBUG
LOG_LEVEL = os.getenv("PROGRAM_ANALYTICS_LOG_LEVEL", "WARNING").strip().upper()

# ============================================================================
# FRAME COLUMNS
# ============================================================================
# Columns every store frame must carry, per entity table
ENTITY_COLUMNS = {
    "programs": ["id", "name", "name_en"],
    "surveys": ["id", "title", "program_id", "academic_year", "semester", "created_at"],
    "responses": ["id", "survey_id", "submitted_at"],
    "questions": ["id", "survey_id", "text", "type", "options", "order_index"],
    "answers": ["id", "response_id", "question_id", "numeric_value", "value"],
    "complaints": [
        "id", "program_id", "subject", "status", "type",
        "complainant_type", "created_at",
    ],
    "courses": ["id", "program_id", "name", "name_en"],
    "survey_courses": ["survey_id", "course_id"],
    "reports": ["id", "survey_id", "recommendations_text"],
}

# Columns of the assembled answer frame
ANSWER_FRAME_COLUMNS = [
    "answer_id",
    "response_id",
    "survey_id",
    "program_id",
    "question_id",
    "question_type",
    "numeric_value",
    "value",
]
