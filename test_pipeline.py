"""
Tests for the pipeline runner and the analysis state.

Checks error wrapping, step return type enforcement, intermediate capture
and the result accessors.
"""

import pandas as pd
import pytest

from program_analytics.pipeline import SurveyData, get_intermediate_state, run_pipeline
from program_analytics.steps import assembly, validation
from program_analytics.steps.validation import handle_validation_issue
from program_analytics.utils.errors import PipelineError, ValidationError


def failing_step(data):
    raise KeyError("survey_type")


def wrong_return(data):
    return data.surveys


def test_step_errors_are_wrapped_with_step_name(survey_data):
    steps = [
        ('assemble_answers', assembly.assemble_answer_frame, {}),
        ('broken_step', failing_step, {}),
    ]

    with pytest.raises(PipelineError) as excinfo:
        run_pipeline(survey_data, steps)

    assert excinfo.value.step_name == 'broken_step'
    assert "step 2" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, KeyError)


def test_step_must_return_state(survey_data):
    with pytest.raises(PipelineError, match="did not return a SurveyData"):
        run_pipeline(survey_data, [('wrong_return', wrong_return, {})])


def test_validation_errors_inside_steps_become_pipeline_errors():
    data = SurveyData(surveys=pd.DataFrame({"id": ["s1"]}))
    steps = [('validate_columns', validation.check_required_columns, {'entities': ["surveys"]})]

    with pytest.raises(PipelineError) as excinfo:
        run_pipeline(data, steps)

    assert isinstance(excinfo.value.__cause__, ValidationError)


def test_intermediates_are_captured(survey_data):
    steps = [
        ('assemble_answers', assembly.assemble_answer_frame, {}),
        ('drop_orphaned_answers', validation.drop_orphaned_answers, {}),
    ]

    final, intermediates = run_pipeline(survey_data, steps, capture_intermediates=True)

    assert list(intermediates) == ['01_assemble_answers', '02_drop_orphaned_answers']
    assembled = get_intermediate_state(intermediates, 'assemble_answers')
    cleaned = get_intermediate_state(intermediates, 'drop_orphaned_answers')
    assert len(assembled) - len(cleaned) == 1
    assert not cleaned["orphaned"].any()
    assert len(final.answer_frame) == len(cleaned)
    assert get_intermediate_state(intermediates, 'missing') is None


def test_intermediates_off_by_default(survey_data):
    _, intermediates = run_pipeline(
        survey_data, [('assemble_answers', assembly.assemble_answer_frame, {})]
    )
    assert intermediates == {}


def test_assembled_frame_carries_program_and_type(survey_data):
    final, _ = run_pipeline(survey_data, [('assemble_answers', assembly.assemble_answer_frame, {})])
    frame = final.answer_frame.set_index("answer_id")

    assert frame.at["s1-r0-q1", "program_id"] == "A"
    assert frame.at["s1-r0-q1", "question_type"] == "likert"
    assert bool(frame.at["orphan", "orphaned"]) is True
    assert bool(frame.at["s3-r0-q3", "orphaned"]) is False


def test_get_result():
    data = SurveyData()
    data.set_result("survey_scores", 1)

    assert data.get_result("survey_scores") == 1
    assert data.get_result("missing", default=[]) == []
    with pytest.raises(PipelineError):
        data.get_result("missing")


def test_from_records_rejects_unknown_tables():
    with pytest.raises(ValueError, match="Unknown tables"):
        SurveyData.from_records(students=[{"id": 1}])


def test_concat_keeps_first_copy_of_shared_rows():
    first = SurveyData.from_records(programs=[{"id": "A", "name": "CS"}],
                                    survey_courses=[{"survey_id": "s1", "course_id": "c1"}])
    second = SurveyData.from_records(programs=[{"id": "A", "name": "CS"}, {"id": "B", "name": "Math"}],
                                     survey_courses=[{"survey_id": "s1", "course_id": "c1"}])

    merged = SurveyData.concat([first, second])

    assert merged.programs["id"].tolist() == ["A", "B"]
    assert len(merged.survey_courses) == 1
    assert merged.answers.empty


def test_handle_validation_issue_modes():
    handle_validation_issue("Test Issue", ["Detail 1"], should_fail=False)

    with pytest.raises(ValidationError, match="Test Issue"):
        handle_validation_issue("Test Issue", ["Detail 1"], should_fail=True)
