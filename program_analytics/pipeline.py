"""
Pipeline runner module for Program Analytics

This module provides the analysis state passed between steps and the core
pipeline execution functionality with intermediate state tracking and error
handling.
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from . import config
from .utils.errors import PipelineError, log_error_block

logger = logging.getLogger(__name__)

ENTITY_FRAMES = tuple(config.ENTITY_COLUMNS)


def empty_frame(entity: str) -> pd.DataFrame:
    """Empty DataFrame carrying the expected columns of a store table."""
    return pd.DataFrame(columns=config.ENTITY_COLUMNS[entity])


@dataclass
class SurveyData:
    """
    Analysis state handed from step to step.

    One DataFrame per store table, the assembled answer frame (built by the
    ``assemble_answers`` step) and a ``results`` dict that steps fill in.
    """
    programs: pd.DataFrame = field(default_factory=lambda: empty_frame("programs"))
    surveys: pd.DataFrame = field(default_factory=lambda: empty_frame("surveys"))
    responses: pd.DataFrame = field(default_factory=lambda: empty_frame("responses"))
    questions: pd.DataFrame = field(default_factory=lambda: empty_frame("questions"))
    answers: pd.DataFrame = field(default_factory=lambda: empty_frame("answers"))
    complaints: pd.DataFrame = field(default_factory=lambda: empty_frame("complaints"))
    courses: pd.DataFrame = field(default_factory=lambda: empty_frame("courses"))
    survey_courses: pd.DataFrame = field(default_factory=lambda: empty_frame("survey_courses"))
    reports: pd.DataFrame = field(default_factory=lambda: empty_frame("reports"))
    answer_frame: Optional[pd.DataFrame] = None
    results: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_records(cls, **tables: Sequence[Dict[str, Any]]) -> "SurveyData":
        """Build the state from plain row dicts, one keyword per table."""
        unknown = set(tables) - set(ENTITY_FRAMES)
        if unknown:
            raise ValueError(f"Unknown tables: {sorted(unknown)}")
        frames = {}
        for entity, rows in tables.items():
            frame = pd.DataFrame(list(rows))
            for column in config.ENTITY_COLUMNS[entity]:
                if column not in frame.columns:
                    frame[column] = None
            frames[entity] = frame
        return cls(**frames)

    @classmethod
    def concat(cls, parts: Sequence["SurveyData"]) -> "SurveyData":
        """
        Merge per-program states in the given order.

        Rows shared by several parts (e.g. the same program row) are kept once.
        """
        merged = {}
        for entity in ENTITY_FRAMES:
            frames = [getattr(part, entity) for part in parts]
            frames = [frame for frame in frames if not frame.empty]
            if not frames:
                merged[entity] = empty_frame(entity)
                continue
            frame = pd.concat(frames, ignore_index=True)
            key = ["survey_id", "course_id"] if entity == "survey_courses" else ["id"]
            merged[entity] = frame.drop_duplicates(subset=key).reset_index(drop=True)
        return cls(**merged)

    def get_result(self, key: str, default: Any = None) -> Any:
        """
        Fetch a step result.

        Raises:
            PipelineError: If the result is missing and no default is given
        """
        if key in self.results:
            return self.results[key]
        if default is not None:
            return default
        raise PipelineError(f"Critical pipeline result '{key}' has not been computed")

    def set_result(self, key: str, value: Any) -> None:
        self.results[key] = value

    def copy(self) -> "SurveyData":
        values = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, pd.DataFrame):
                value = value.copy()
            elif isinstance(value, dict):
                value = dict(value)
            values[f.name] = value
        return SurveyData(**values)


Step = Tuple[str, Callable[..., SurveyData], Dict[str, Any]]


def run_pipeline(
    data: SurveyData,
    steps: List[Step],
    capture_intermediates: Optional[bool] = None,
    verbose: Optional[bool] = None,
) -> Tuple[SurveyData, Dict[str, pd.DataFrame]]:
    """
    Executes a pipeline of analysis steps on a SurveyData state.

    Each step receives the state and returns it, usually after adding a
    frame column or a result. When intermediates are captured, the answer
    frame is copied after every step for debugging.

    Args:
        data: The initial state, as loaded from the store
        steps: List of tuples containing:
            - step_name (str): Descriptive name for the step
            - func (Callable): Function taking and returning a SurveyData
            - params (Dict): Keyword parameters passed to the function
        capture_intermediates: Whether to keep the answer frame after each step
            Defaults to config.CAPTURE_INTERMEDIATES_DEFAULT
        verbose: Log progress at INFO instead of DEBUG
            Defaults to config.VERBOSE_PIPELINE

    Returns:
        Tuple containing:
            - Final state
            - Dictionary of intermediate answer frames (empty if not captured)

    Raises:
        PipelineError: If any step fails, with details about which step and why

    Example:
        >>> steps = [
        ...     ('assemble_answers', assembly.assemble_answer_frame, {}),
        ...     ('classify_surveys', classification.add_survey_types, {}),
        ... ]
        >>> final, intermediates = run_pipeline(data, steps)
    """
    if capture_intermediates is None:
        capture_intermediates = config.CAPTURE_INTERMEDIATES_DEFAULT
    if verbose is None:
        verbose = config.VERBOSE_PIPELINE
    level = logging.INFO if verbose else logging.DEBUG

    intermediate_results: Dict[str, pd.DataFrame] = {}
    start_time = datetime.now()
    logger.log(level, "Starting pipeline with %d steps (%d surveys, %d answers)",
               len(steps), len(data.surveys), len(data.answers))

    # steps rebind frames on the state, so work on a copy of the caller's
    current = data.copy()
    for idx, (step_name, func, params) in enumerate(steps, 1):
        step_start = datetime.now()
        logger.log(level, "Step %d/%d: %s (%s)", idx, len(steps), step_name, func.__name__)

        try:
            current = func(current, **params)
        except PipelineError:
            raise
        except Exception as e:
            error_msg = (
                f"Pipeline failed at step {idx}: '{step_name}'\n"
                f"Function: {func.__name__}\n"
                f"Parameters: {sorted(params)}\n"
                f"Error: {type(e).__name__}: {e}"
            )
            log_error_block("Pipeline Execution Failed", error_msg.splitlines(),
                            level=logging.ERROR)
            raise PipelineError(error_msg, step_name=step_name) from e

        if not isinstance(current, SurveyData):
            raise PipelineError(
                f"Step '{step_name}' did not return a SurveyData. "
                f"Got {type(current).__name__} instead.",
                step_name=step_name,
            )

        if capture_intermediates and current.answer_frame is not None:
            intermediate_results[f"{idx:02d}_{step_name}"] = current.answer_frame.copy()

        step_duration = (datetime.now() - step_start).total_seconds()
        logger.log(level, "  completed in %.3fs", step_duration)

    total_duration = (datetime.now() - start_time).total_seconds()
    logger.log(level, "Pipeline completed in %.3fs, results: %s",
               total_duration, sorted(current.results))

    return current, intermediate_results


def get_intermediate_state(
    intermediate_results: Dict[str, pd.DataFrame],
    step_name: str,
) -> Optional[pd.DataFrame]:
    """
    Retrieve a specific intermediate answer frame by step name.

    Example:
        >>> classified = get_intermediate_state(intermediates, 'classify_surveys')
    """
    for key, df in intermediate_results.items():
        if key.endswith(f"_{step_name}"):
            return df

    for key, df in intermediate_results.items():
        if step_name in key:
            return df

    return None
