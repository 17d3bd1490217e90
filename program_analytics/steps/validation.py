"""
Data validation steps for the analytics pipeline

This module contains the request checks that must pass before any store
query, the frame column checks, and the data anomaly handling (out-of-range
scores, orphaned question references) that is absorbed locally and only
reported as warnings.
"""

import logging
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .. import config
from ..models import ComparisonRequest
from ..pipeline import SurveyData
from ..utils.errors import ValidationError, log_error_block
from ..utils.stats_helpers import coerce_scores, in_score_range

logger = logging.getLogger(__name__)


def handle_validation_issue(issue_type: str, details: List[str],
                            should_fail: bool = True) -> None:
    """
    Centralized validation issue handler for consistent behavior.

    Args:
        issue_type: Type of validation issue, used as the user-facing message
        details: List of detail messages
        should_fail: Whether to raise ValidationError or only warn
    """
    if should_fail:
        log_error_block(f"VALIDATION ERROR: {issue_type}", details, level=logging.INFO)
        raise ValidationError(issue_type)
    log_error_block(f"VALIDATION WARNING: {issue_type}", details)


def unique_program_ids(program_ids: Optional[Iterable[str]]) -> List[str]:
    """Program ids with blanks and repeats removed, first occurrence kept."""
    seen = []
    for program_id in program_ids or []:
        if program_id is None:
            continue
        program_id = str(program_id).strip()
        if program_id and program_id not in seen:
            seen.append(program_id)
    return seen


def validate_comparison_request(request: ComparisonRequest) -> ComparisonRequest:
    """
    Check a comparison request before anything is fetched.

    Args:
        request: Programs and filters chosen by the user

    Returns:
        A normalized request (trimmed year/semester, de-duplicated programs)

    Raises:
        ValidationError: If the academic year is missing or fewer than
            two distinct programs are selected
    """
    academic_year = (request.academic_year or "").strip()
    if not academic_year:
        handle_validation_issue(
            "Please select an academic year to compare programs",
            ["The academic year filter is required for comparisons"],
        )

    program_ids = unique_program_ids(request.program_ids)
    if len(program_ids) < config.MIN_PROGRAMS_TO_COMPARE:
        handle_validation_issue(
            f"Please select at least {config.MIN_PROGRAMS_TO_COMPARE} programs to compare",
            [f"Selected programs: {program_ids}"],
        )

    semester = (request.semester or "").strip() or None
    return ComparisonRequest(program_ids=program_ids, academic_year=academic_year,
                             semester=semester)


def validate_role(role: str) -> str:
    """
    Check a dashboard role.

    Raises:
        ValidationError: For a role outside the known ones
    """
    known_roles = config.PRIVILEGED_ROLES + config.SCOPED_ROLES
    if role not in known_roles:
        handle_validation_issue(
            f"Unknown role '{role}'",
            [f"Known roles: {list(known_roles)}"],
        )
    return role


def scope_program_ids(role: str, user_program_ids: Sequence[str],
                      all_program_ids: Sequence[str]) -> List[str]:
    """
    Programs a user may see on the dashboard.

    Admins and deans see every program. Other roles see only the programs
    they are assigned to that also exist, and nothing when unassigned.
    """
    validate_role(role)
    if role in config.PRIVILEGED_ROLES:
        return list(all_program_ids)
    allowed = set(unique_program_ids(user_program_ids))
    return [program_id for program_id in all_program_ids if program_id in allowed]


def check_required_columns(data: SurveyData,
                           entities: Optional[Sequence[str]] = None) -> SurveyData:
    """
    Validate that the store frames carry the columns the pipeline needs.

    Args:
        data: Analysis state
        entities: Tables to check (default: all)

    Returns:
        The state unchanged (for pipeline compatibility)
    """
    if entities is None:
        entities = list(config.ENTITY_COLUMNS)

    error_details = []
    for entity in entities:
        frame = getattr(data, entity)
        missing = set(config.ENTITY_COLUMNS[entity]) - set(frame.columns)
        if missing:
            error_details.append(f"{entity}: missing {sorted(missing)}")

    if error_details:
        handle_validation_issue(
            "Required columns not found in store data",
            error_details,
            should_fail=config.FAIL_ON_MISSING_COLUMNS,
        )

    return data


def flag_out_of_range_values(data: SurveyData) -> SurveyData:
    """
    Report numeric answers outside the score range.

    The values stay in the frame; numeric aggregation ignores them.

    Returns:
        The state unchanged (for pipeline compatibility)
    """
    frame = data.answer_frame
    if frame is None or frame.empty:
        return data

    scores = coerce_scores(frame["numeric_value"].to_numpy())
    scores.index = frame.index
    numeric_type = frame["question_type"].isin(config.NUMERIC_QUESTION_TYPES)
    invalid = numeric_type & scores.notna() & ~in_score_range(scores)

    if invalid.any() and config.WARN_ON_INVALID_VALUES:
        bad_values = sorted(set(scores[invalid].tolist()))
        details = [
            f"{int(invalid.sum())} answers outside {config.MIN_SCORE}-{config.MAX_SCORE}",
            f"Values: {bad_values[:10]}",
            "These answers are excluded from every mean",
        ]
        log_error_block("Out-of-range score values", details)

    return data


def drop_orphaned_answers(data: SurveyData) -> SurveyData:
    """
    Remove answers whose question is not part of their survey's question set.

    Returns:
        The state with a filtered answer frame
    """
    frame = data.answer_frame
    if frame is None:
        return data

    orphaned = frame["orphaned"].astype(bool)
    if orphaned.any():
        if config.WARN_ON_ORPHANED_ANSWERS:
            question_ids = sorted(set(frame.loc[orphaned, "question_id"].astype(str)))
            log_error_block("Orphaned answers skipped", [
                f"{int(orphaned.sum())} answers reference questions outside their survey",
                f"Question ids: {question_ids[:10]}",
            ])
        frame = frame.loc[~orphaned]

    data.answer_frame = frame.reset_index(drop=True)
    return data


def filter_surveys(data: SurveyData, academic_year: Optional[str] = None,
                   semester: Optional[str] = None) -> SurveyData:
    """
    Restrict the surveys (and their responses) to an academic year/semester.

    Filters left as None are not applied.
    """
    surveys = data.surveys
    mask = pd.Series(True, index=surveys.index)
    if academic_year:
        mask &= surveys["academic_year"] == academic_year
    if semester:
        mask &= surveys["semester"] == semester

    data.surveys = surveys.loc[mask].reset_index(drop=True)
    kept = set(data.surveys["id"])
    data.responses = data.responses.loc[data.responses["survey_id"].isin(kept)].reset_index(drop=True)
    return data
