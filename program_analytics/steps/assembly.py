"""
Answer assembly step for the analytics pipeline

Joins the flat entity frames loaded from the store into one typed answer
frame, so later steps never deal with nested join shapes.
"""

import pandas as pd

from .. import config
from ..pipeline import SurveyData


def assemble_answer_frame(data: SurveyData) -> SurveyData:
    """
    Build the answer frame: one row per answer with its survey, program and
    question type attached.

    Answers whose response is not part of the loaded surveys are left out.
    Answers referring to a question that does not exist, or that belongs to
    another survey, are kept but flagged in the ``orphaned`` column.

    Args:
        data: Analysis state with surveys, responses, questions and answers

    Returns:
        The state with ``answer_frame`` set
    """
    answers = data.answers[["id", "response_id", "question_id", "numeric_value", "value"]]
    answers = answers.rename(columns={"id": "answer_id"})

    responses = data.responses[["id", "survey_id"]].rename(columns={"id": "response_id"})
    surveys = data.surveys[["id", "program_id"]].rename(columns={"id": "survey_id"})
    questions = data.questions[["id", "survey_id", "type"]].rename(columns={
        "id": "question_id",
        "survey_id": "question_survey_id",
        "type": "question_type",
    })

    frame = answers.merge(responses, on="response_id", how="inner")
    frame = frame.merge(surveys, on="survey_id", how="inner")
    frame = frame.merge(questions, on="question_id", how="left")

    frame["orphaned"] = (
        frame["question_type"].isna()
        | (frame["question_survey_id"] != frame["survey_id"])
    )
    frame["numeric_value"] = pd.to_numeric(frame["numeric_value"], errors="coerce")

    data.answer_frame = frame[config.ANSWER_FRAME_COLUMNS + ["orphaned"]].reset_index(drop=True)
    return data
