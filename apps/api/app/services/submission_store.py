"""SQLAlchemy-backed submission repository."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.ami.canonical import utc_timestamp
from app.submissions.schema import Submission, generate_submission_id
from app.submissions.workflow import ConcurrentUpdateError
from apps.api.app.db.models import SubmissionRecord


def _to_submission(row: SubmissionRecord) -> Submission:
    return Submission.model_validate(
        {
            "submission_id": row.submission_id,
            "type": row.type,
            "system_id": row.system_id,
            "assessment_id": row.assessment_id,
            "status": row.status,
            "claims": row.claims,
            "evidence": row.evidence,
            "contact": row.contact,
            "notes": row.notes,
            "review": row.review,
            "resulting_assessment_id": row.resulting_assessment_id,
            "submitted_at": row.submitted_at,
            "updated_at": row.updated_at,
        }
    )


class SqlSubmissionRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def create(self, payload: Mapping[str, Any], *, now: datetime | None = None) -> Submission:
        """Persist an already validated intake payload with status `received`."""
        timestamp = utc_timestamp(now)
        submission = Submission.model_validate(
            {
                "submission_id": generate_submission_id(payload["system_id"], now=now),
                "type": payload["type"],
                "system_id": payload["system_id"],
                "assessment_id": payload.get("assessment_id") or None,
                "status": "received",
                "claims": payload["claims"],
                "evidence": payload["evidence"],
                "contact": payload["contact"],
                "notes": payload.get("notes") or None,
                "review": None,
                "submitted_at": timestamp,
                "updated_at": timestamp,
            }
        )
        record = submission.model_dump(mode="json")
        self._db.add(SubmissionRecord(**record))
        self._db.commit()
        return submission

    def get(self, submission_id: str) -> Submission | None:
        row = self._db.get(SubmissionRecord, submission_id)
        return _to_submission(row) if row is not None else None

    def list(self, *, system_id: str | None = None, status: str | None = None) -> list[Submission]:
        statement = select(SubmissionRecord)
        if system_id:
            statement = statement.where(SubmissionRecord.system_id == system_id)
        if status:
            statement = statement.where(SubmissionRecord.status == status)
        statement = statement.order_by(
            SubmissionRecord.submitted_at.desc(), SubmissionRecord.submission_id.desc()
        )
        return [_to_submission(row) for row in self._db.scalars(statement).all()]

    def list_for_assessment(self, assessment_id: str) -> list[Submission]:
        rows = self._db.scalars(
            select(SubmissionRecord)
            .where(SubmissionRecord.assessment_id == assessment_id)
            .order_by(SubmissionRecord.submitted_at.desc(), SubmissionRecord.submission_id.desc())
        ).all()
        return [_to_submission(row) for row in rows]

    def save_review(self, submission: Submission, *, expected_updated_at: str) -> Submission:
        """Row-locked compare-and-swap on updated_at."""
        self._db.scalars(
            select(SubmissionRecord)
            .where(SubmissionRecord.submission_id == submission.submission_id)
            .with_for_update()
        ).one_or_none()
        result = self._db.execute(
            update(SubmissionRecord)
            .where(
                SubmissionRecord.submission_id == submission.submission_id,
                SubmissionRecord.updated_at == expected_updated_at,
            )
            .values(
                status=submission.status,
                review=submission.review.model_dump(mode="json") if submission.review else None,
                updated_at=submission.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._db.rollback()
            raise ConcurrentUpdateError(
                f"submission {submission.submission_id} was modified concurrently"
            )
        self._db.commit()
        return submission

    def link_assessment(
        self,
        submission_id: str,
        assessment_id: str,
        *,
        now: datetime | None = None,
    ) -> Submission | None:
        row = self._db.get(SubmissionRecord, submission_id)
        if row is None:
            return None
        row.resulting_assessment_id = assessment_id
        row.updated_at = utc_timestamp(now)
        self._db.commit()
        self._db.refresh(row)
        return _to_submission(row)
