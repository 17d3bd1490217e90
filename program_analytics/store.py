"""
Read-only access to the response store

Table definitions use SQLAlchemy Core; queries run on the asyncio engine and
results are materialized as flat pandas DataFrames (one per table) through
``pandas.read_sql`` inside ``AsyncConnection.run_sync``. Nothing here
writes to the store.
"""

import asyncio
import logging
from typing import Optional, Sequence

import pandas as pd
from sqlalchemy import (
    JSON, Column, DateTime, Float, Integer, MetaData, String, Table, Text, select
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from . import config
from .pipeline import SurveyData, empty_frame
from .utils.errors import StoreError

logger = logging.getLogger(__name__)

metadata = MetaData()

programs = Table(
    "programs", metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("name_en", String(255)),
)

surveys = Table(
    "surveys", metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(500), nullable=False),
    Column("program_id", String(64)),
    Column("academic_year", String(20)),
    Column("semester", String(20)),
    Column("created_at", DateTime),
)

questions = Table(
    "questions", metadata,
    Column("id", String(64), primary_key=True),
    Column("survey_id", String(64), nullable=False),
    Column("text", Text, nullable=False, default=""),
    Column("type", String(20), nullable=False),
    Column("options", JSON),
    Column("order_index", Integer, nullable=False, default=0),
)

responses = Table(
    "responses", metadata,
    Column("id", String(64), primary_key=True),
    Column("survey_id", String(64), nullable=False),
    Column("submitted_at", DateTime),
)

answers = Table(
    "answers", metadata,
    Column("id", String(64), primary_key=True),
    Column("response_id", String(64), nullable=False),
    Column("question_id", String(64), nullable=False),
    Column("numeric_value", Float),
    Column("value", Text),
)

complaints = Table(
    "complaints", metadata,
    Column("id", String(64), primary_key=True),
    Column("program_id", String(64)),
    Column("subject", String(500), nullable=False, default=""),
    Column("status", String(20)),
    Column("type", String(20)),
    Column("complainant_type", String(50)),
    Column("created_at", DateTime),
)

courses = Table(
    "courses", metadata,
    Column("id", String(64), primary_key=True),
    Column("program_id", String(64)),
    Column("name", String(255), nullable=False),
    Column("name_en", String(255)),
)

survey_courses = Table(
    "survey_courses", metadata,
    Column("survey_id", String(64), primary_key=True),
    Column("course_id", String(64), primary_key=True),
)

reports = Table(
    "reports", metadata,
    Column("id", String(64), primary_key=True),
    Column("survey_id", String(64)),
    Column("recommendations_text", Text),
)


def _read_frame(sync_conn, statement) -> pd.DataFrame:
    return pd.read_sql(statement, sync_conn)


class ResponseStore:
    """
    Async, read-only gateway to the survey database.

    Every method returns a DataFrame with the table's columns, empty when
    nothing matches. Failures surface as StoreError.

    Args:
        engine: An async SQLAlchemy engine; built from ``url`` when omitted
        url: Database URL (default: config.DATABASE_URL)
    """

    def __init__(self, engine: Optional[AsyncEngine] = None, url: Optional[str] = None):
        if engine is None:
            engine = create_async_engine(url or config.DATABASE_URL)
        self.engine = engine

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def _fetch(self, entity: str, statement) -> pd.DataFrame:
        try:
            async with self.engine.connect() as conn:
                frame = await conn.run_sync(_read_frame, statement)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Store query on '%s' failed: %s", entity, e)
            raise StoreError(f"Failed to load {entity} from the response store") from e
        logger.debug("Loaded %d rows from %s", len(frame), entity)
        return frame

    async def fetch_programs(self, program_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
        statement = select(programs).order_by(programs.c.name, programs.c.id)
        if program_ids is not None:
            if not program_ids:
                return empty_frame("programs")
            statement = statement.where(programs.c.id.in_(list(program_ids)))
        return await self._fetch("programs", statement)

    async def fetch_surveys(
        self,
        program_ids: Sequence[str],
        academic_year: Optional[str] = None,
        semester: Optional[str] = None,
    ) -> pd.DataFrame:
        if not program_ids:
            return empty_frame("surveys")
        statement = select(surveys).where(surveys.c.program_id.in_(list(program_ids)))
        if academic_year:
            statement = statement.where(surveys.c.academic_year == academic_year)
        if semester:
            statement = statement.where(surveys.c.semester == semester)
        statement = statement.order_by(surveys.c.created_at, surveys.c.id)
        return await self._fetch("surveys", statement)

    async def fetch_survey(self, survey_id: str) -> pd.DataFrame:
        return await self._fetch("surveys", select(surveys).where(surveys.c.id == survey_id))

    async def fetch_responses(self, survey_ids: Sequence[str]) -> pd.DataFrame:
        if not survey_ids:
            return empty_frame("responses")
        statement = (
            select(responses)
            .where(responses.c.survey_id.in_(list(survey_ids)))
            .order_by(responses.c.id)
        )
        return await self._fetch("responses", statement)

    async def fetch_questions(self, survey_ids: Sequence[str]) -> pd.DataFrame:
        if not survey_ids:
            return empty_frame("questions")
        statement = (
            select(questions)
            .where(questions.c.survey_id.in_(list(survey_ids)))
            .order_by(questions.c.survey_id, questions.c.order_index)
        )
        return await self._fetch("questions", statement)

    async def fetch_answers(self, response_ids: Sequence[str]) -> pd.DataFrame:
        if not response_ids:
            return empty_frame("answers")
        statement = (
            select(answers)
            .where(answers.c.response_id.in_(list(response_ids)))
            .order_by(answers.c.id)
        )
        return await self._fetch("answers", statement)

    async def fetch_complaints(self, program_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
        statement = select(complaints).order_by(complaints.c.created_at.desc(), complaints.c.id)
        if program_ids is not None:
            if not program_ids:
                return empty_frame("complaints")
            statement = statement.where(complaints.c.program_id.in_(list(program_ids)))
        return await self._fetch("complaints", statement)

    async def fetch_courses(self, program_ids: Sequence[str]) -> pd.DataFrame:
        if not program_ids:
            return empty_frame("courses")
        statement = (
            select(courses)
            .where(courses.c.program_id.in_(list(program_ids)))
            .order_by(courses.c.name, courses.c.id)
        )
        return await self._fetch("courses", statement)

    async def fetch_survey_courses(self, survey_ids: Sequence[str]) -> pd.DataFrame:
        if not survey_ids:
            return empty_frame("survey_courses")
        statement = select(survey_courses).where(survey_courses.c.survey_id.in_(list(survey_ids)))
        return await self._fetch("survey_courses", statement)

    async def fetch_reports(self, survey_ids: Sequence[str]) -> pd.DataFrame:
        if not survey_ids:
            return empty_frame("reports")
        statement = select(reports).where(reports.c.survey_id.in_(list(survey_ids)))
        return await self._fetch("reports", statement)

    async def load_single_survey(self, survey_id: str) -> SurveyData:
        """Load one survey with its questions, responses and answers."""
        survey_frame = await self.fetch_survey(survey_id)
        survey_ids = survey_frame["id"].tolist()
        response_frame, question_frame = await asyncio.gather(
            self.fetch_responses(survey_ids),
            self.fetch_questions(survey_ids),
        )
        answer_frame = await self.fetch_answers(response_frame["id"].tolist())
        return SurveyData(
            surveys=survey_frame,
            responses=response_frame,
            questions=question_frame,
            answers=answer_frame,
        )

    async def load_survey_data(
        self,
        program_ids: Sequence[str],
        academic_year: Optional[str] = None,
        semester: Optional[str] = None,
        include_program_context: bool = False,
    ) -> SurveyData:
        """
        Load everything needed to score the given programs' surveys.

        Surveys, responses, questions and answers are always loaded. With
        ``include_program_context`` the complaints, courses, course links and
        reports of the programs are loaded as well.

        Args:
            program_ids: Programs whose surveys are loaded
            academic_year: Optional academic year filter
            semester: Optional semester filter
            include_program_context: Also load rollup-only tables

        Returns:
            SurveyData with the flat entity frames
        """
        program_ids = list(program_ids)
        program_frame = await self.fetch_programs(program_ids)
        survey_frame = await self.fetch_surveys(program_ids, academic_year, semester)
        survey_ids = survey_frame["id"].tolist()

        response_frame, question_frame = await asyncio.gather(
            self.fetch_responses(survey_ids),
            self.fetch_questions(survey_ids),
        )
        answer_frame = await self.fetch_answers(response_frame["id"].tolist())

        data = SurveyData(
            programs=program_frame,
            surveys=survey_frame,
            responses=response_frame,
            questions=question_frame,
            answers=answer_frame,
        )

        if include_program_context:
            (data.complaints, data.courses,
             data.survey_courses, data.reports) = await asyncio.gather(
                self.fetch_complaints(program_ids),
                self.fetch_courses(program_ids),
                self.fetch_survey_courses(survey_ids),
                self.fetch_reports(survey_ids),
            )

        return data
