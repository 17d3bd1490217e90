"""
Main orchestrator for Program Analytics

This is the primary entry point. The ``*_steps`` functions define the
pipelines; the ``run_*`` functions execute them on already loaded data; the
async functions load data from the response store (bounded by a timeout)
and then run the matching pipeline. Every call recomputes from scratch and
returns a new result object only when it fully succeeds.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .models import (
    ComparisonRequest, ComparisonResult, ComplaintBreakdown, DashboardSummary,
    ProgramStats, ProgramStatsRequest, SurveyReport,
)
from .pipeline import Step, SurveyData, run_pipeline
from .steps import assembly, classification, reporting, statistics, validation
from .store import ResponseStore
from .utils.errors import (
    NotFoundError, ProgramAnalyticsError, StoreError, StoreTimeoutError, ValidationError
)
from .utils.stats_helpers import format_average

logger = logging.getLogger(__name__)

SCORING_ENTITIES = ["programs", "surveys", "responses", "questions", "answers"]


# ============================================================================
# PIPELINE DEFINITIONS
# ============================================================================

def _scoring_steps() -> List[Step]:
    return [
        ('assemble_answers', assembly.assemble_answer_frame, {}),
        ('flag_out_of_range', validation.flag_out_of_range_values, {}),
        ('drop_orphaned_answers', validation.drop_orphaned_answers, {}),
    ]


def comparison_steps(request: ComparisonRequest,
                     rules: Optional[List[Dict[str, Any]]] = None) -> List[Step]:
    program_ids = list(request.program_ids)
    return [
        ('validate_columns', validation.check_required_columns, {
            'entities': SCORING_ENTITIES
        }),
        ('filter_surveys', validation.filter_surveys, {
            'academic_year': request.academic_year,
            'semester': request.semester,
        }),
        *_scoring_steps(),
        ('classify_surveys', classification.add_survey_types, {'rules': rules}),
        ('calculate_survey_scores', statistics.calculate_survey_scores, {}),
        ('calculate_type_scores', statistics.calculate_type_scores, {
            'program_ids': program_ids
        }),
        ('calculate_program_overall', statistics.calculate_program_overall, {
            'program_ids': program_ids
        }),
        ('build_comparison', reporting.build_comparison_result, {'request': request}),
    ]


def program_steps(request: Optional[ProgramStatsRequest] = None) -> List[Step]:
    if request is None:
        request = ProgramStatsRequest()
    return [
        ('validate_columns', validation.check_required_columns, {}),
        ('filter_surveys', validation.filter_surveys, {
            'academic_year': request.academic_year,
            'semester': request.semester,
        }),
        *_scoring_steps(),
        ('calculate_survey_scores', statistics.calculate_survey_scores, {}),
        ('calculate_program_satisfaction', statistics.calculate_program_satisfaction, {}),
        ('calculate_course_satisfaction', statistics.calculate_course_satisfaction, {}),
        ('count_text_comments', statistics.count_text_comments, {}),
        ('summarize_complaints', statistics.summarize_complaints, {}),
        ('build_program_reports', reporting.build_program_reports, {}),
    ]


# ============================================================================
# RUNNING ON LOADED DATA
# ============================================================================

def run_comparison(data: SurveyData, request: ComparisonRequest,
                   rules: Optional[List[Dict[str, Any]]] = None,
                   verbose: Optional[bool] = None) -> ComparisonResult:
    """
    Compare programs on already loaded data.

    Args:
        data: Programs, surveys, responses, questions and answers; surveys
            outside the request's year and semester are dropped
        request: Selected programs and filters
        rules: Classification rules (default: config.SURVEY_TYPE_RULES)
        verbose: Log pipeline progress at INFO

    Returns:
        ComparisonResult

    Raises:
        ValidationError: If the request has no year or fewer than 2 programs
    """
    request = validation.validate_comparison_request(request)
    final, _ = run_pipeline(data, comparison_steps(request, rules), verbose=verbose)
    return final.get_result("comparison")


def run_program_rollup(data: SurveyData,
                       request: Optional[ProgramStatsRequest] = None,
                       verbose: Optional[bool] = None) -> List[ProgramStats]:
    """Program stats for every program in ``data.programs``, in frame order."""
    final, _ = run_pipeline(data, program_steps(request), verbose=verbose)
    return final.get_result("program_stats")


def run_survey_report(data: SurveyData, survey_id: str,
                      verbose: Optional[bool] = None) -> SurveyReport:
    if survey_id not in set(data.surveys["id"]):
        raise NotFoundError(f"Survey '{survey_id}' not found")
    steps = [
        ('validate_columns', validation.check_required_columns, {
            'entities': ["surveys", "responses", "questions", "answers"]
        }),
        ('build_survey_report', reporting.build_survey_report, {'survey_id': survey_id}),
    ]
    final, _ = run_pipeline(data, steps, verbose=verbose)
    return final.get_result("survey_report")


def run_complaint_breakdown(data: SurveyData, program_id: Optional[str] = None,
                            reference_date: Optional[date] = None,
                            verbose: Optional[bool] = None) -> ComplaintBreakdown:
    steps = [
        ('validate_columns', validation.check_required_columns, {'entities': ["complaints"]}),
        ('build_complaint_breakdown', reporting.build_complaint_breakdown, {
            'program_id': program_id,
            'reference_date': reference_date,
        }),
    ]
    final, _ = run_pipeline(data, steps, verbose=verbose)
    return final.get_result("complaint_breakdown")


# ============================================================================
# STORE-BACKED ENTRY POINTS
# ============================================================================

async def _bounded(awaitable, what: str, timeout: Optional[float] = None):
    """Await a store operation, turning an expired timeout into StoreTimeoutError."""
    if timeout is None:
        timeout = config.STORE_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        logger.warning("Loading %s timed out after %ss", what, timeout)
        raise StoreTimeoutError(
            f"The response store did not answer within {timeout:g}s while loading {what}"
        ) from e


async def load_programs(
    store: ResponseStore,
    program_ids: Sequence[str],
    academic_year: Optional[str] = None,
    semester: Optional[str] = None,
    include_program_context: bool = False,
    parallel: Optional[bool] = None,
) -> SurveyData:
    """
    Load each program's data separately and merge it in ``program_ids`` order.

    With ``parallel`` (default: config.PARALLEL_PROGRAM_FETCH) the programs
    are fetched concurrently; the merge order does not depend on which
    fetch finishes first.
    """
    if parallel is None:
        parallel = config.PARALLEL_PROGRAM_FETCH

    def load(program_id):
        return store.load_survey_data([program_id], academic_year, semester,
                                      include_program_context=include_program_context)

    if parallel:
        parts = await asyncio.gather(*(load(program_id) for program_id in program_ids))
    else:
        parts = [await load(program_id) for program_id in program_ids]
    return SurveyData.concat(parts)


async def compare_programs(
    store: ResponseStore,
    request: ComparisonRequest,
    rules: Optional[List[Dict[str, Any]]] = None,
    timeout: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> ComparisonResult:
    """
    Cross-program comparison for one academic year (and optional semester).

    The request is validated before the store is touched.

    Raises:
        ValidationError: Missing year or fewer than 2 programs
        StoreError: The store failed or timed out (StoreTimeoutError)
    """
    request = validation.validate_comparison_request(request)
    data = await _bounded(
        load_programs(store, request.program_ids, request.academic_year, request.semester),
        "comparison data", timeout,
    )

    missing = set(request.program_ids) - set(data.programs["id"])
    if missing:
        logger.warning("Programs not found in store: %s", sorted(missing))

    return run_comparison(data, request, rules, verbose=verbose)


async def build_program_stats(
    store: ResponseStore,
    program_id: str,
    request: Optional[ProgramStatsRequest] = None,
    timeout: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> ProgramStats:
    """
    Rollup of one program: satisfaction, complaints, courses and details.

    Raises:
        NotFoundError: Unknown program
        StoreError: The store failed or timed out
    """
    if request is None:
        request = ProgramStatsRequest()
    data = await _bounded(
        store.load_survey_data([program_id], request.academic_year, request.semester,
                               include_program_context=True),
        f"program {program_id}", timeout,
    )
    if data.programs.empty:
        raise NotFoundError(f"Program '{program_id}' not found")
    return run_program_rollup(data, request, verbose=verbose)[0]


async def build_dashboard(
    store: ResponseStore,
    role: str,
    user_program_ids: Sequence[str] = (),
    timeout: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> DashboardSummary:
    """
    Role-scoped dashboard over all programs a user may see.

    Admins and deans see every program; other roles only their own.

    Raises:
        ValidationError: Unknown role
        StoreError: The store failed or timed out
    """
    validation.validate_role(role)

    async def load() -> SurveyData:
        all_programs = await store.fetch_programs()
        visible = validation.scope_program_ids(role, user_program_ids,
                                               all_programs["id"].tolist())
        if not visible:
            return SurveyData()
        return await load_programs(store, visible, include_program_context=True)

    data = await _bounded(load(), "dashboard data", timeout)
    if data.programs.empty:
        return DashboardSummary(programs=[])
    return DashboardSummary(programs=run_program_rollup(data, verbose=verbose))


async def build_survey_report(
    store: ResponseStore,
    survey_id: str,
    timeout: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> SurveyReport:
    """
    Per-question report of one survey.

    Raises:
        NotFoundError: Unknown survey
        StoreError: The store failed or timed out
    """
    data = await _bounded(store.load_single_survey(survey_id), f"survey {survey_id}", timeout)
    return run_survey_report(data, survey_id, verbose=verbose)


async def build_complaint_breakdown(
    store: ResponseStore,
    program_id: Optional[str] = None,
    reference_date: Optional[date] = None,
    timeout: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> ComplaintBreakdown:
    """Complaint counts by status, type and month, for one program or all."""
    program_ids = [program_id] if program_id else None
    complaints = await _bounded(store.fetch_complaints(program_ids), "complaints", timeout)
    return run_complaint_breakdown(SurveyData(complaints=complaints), program_id,
                                   reference_date, verbose=verbose)


# ============================================================================
# COMMAND LINE
# ============================================================================

def _matrix_lines(result: ComparisonResult) -> List[str]:
    matrix = result.score_matrix()
    lines = ["\t".join(["type"] + [str(c) for c in matrix.columns])]
    for survey_type, row in matrix.iterrows():
        lines.append("\t".join([str(survey_type)] + [format_average(v) for v in row]))
    return lines


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="program-analytics",
        description="Survey statistics and program comparisons",
    )
    parser.add_argument("--database-url", default=None,
                        help="Async SQLAlchemy URL (default: PROGRAM_ANALYTICS_DATABASE_URL)")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Store timeout in seconds")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline progress")
    sub = parser.add_subparsers(dest="command", required=True)

    compare = sub.add_parser("compare", help="Compare two or more programs")
    compare.add_argument("--program", action="append", dest="programs", default=[],
                         help="Program id (repeat for each program)")
    compare.add_argument("--year", required=False, help="Academic year, e.g. 2024-2025")
    compare.add_argument("--semester", default=None)
    compare.add_argument("--table", action="store_true",
                         help="Print the type x program matrix instead of JSON")

    program = sub.add_parser("program", help="Rollup of one program")
    program.add_argument("program_id")
    program.add_argument("--year", default=None)
    program.add_argument("--semester", default=None)

    dashboard = sub.add_parser("dashboard", help="Role-scoped dashboard")
    dashboard.add_argument("--role", required=True)
    dashboard.add_argument("--program", action="append", dest="programs", default=[])

    survey = sub.add_parser("survey", help="Per-question report of one survey")
    survey.add_argument("survey_id")

    complaints = sub.add_parser("complaints", help="Complaint breakdown")
    complaints.add_argument("--program", dest="program_id", default=None)

    return parser


async def _run_command(args: argparse.Namespace) -> Dict[str, Any]:
    store = ResponseStore(url=args.database_url)
    # None keeps config.VERBOSE_PIPELINE
    verbose = True if args.verbose else None
    try:
        if args.command == "compare":
            request = ComparisonRequest(args.programs, args.year, args.semester)
            result = await compare_programs(store, request, timeout=args.timeout,
                                            verbose=verbose)
            if args.table:
                print("\n".join(_matrix_lines(result)))
            return result.to_dict()
        if args.command == "program":
            request = ProgramStatsRequest(args.year, args.semester)
            stats = await build_program_stats(store, args.program_id, request, args.timeout,
                                              verbose=verbose)
            return stats.to_dict()
        if args.command == "dashboard":
            summary = await build_dashboard(store, args.role, args.programs, args.timeout,
                                            verbose=verbose)
            return summary.to_dict()
        if args.command == "survey":
            report = await build_survey_report(store, args.survey_id, args.timeout,
                                               verbose=verbose)
            return report.to_dict()
        breakdown = await build_complaint_breakdown(store, args.program_id, timeout=args.timeout,
                                                    verbose=verbose)
        return breakdown.to_dict()
    finally:
        await store.dispose()


def cli(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else config.LOG_LEVEL,
        format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        output = asyncio.run(_run_command(args))
    except ValidationError as e:
        print(f"Invalid request: {e}", file=sys.stderr)
        return 2
    except NotFoundError as e:
        print(str(e), file=sys.stderr)
        return 3
    except StoreError as e:
        hint = " (temporary, please retry)" if e.retryable else ""
        print(f"Could not load data: {e}{hint}", file=sys.stderr)
        return 1
    except ProgramAnalyticsError as e:
        print(f"Analysis failed: {e}", file=sys.stderr)
        return 1

    if not (args.command == "compare" and args.table):
        print(json.dumps(output, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(cli())
