"""Structured audit logging for assessment and submission events."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from app.submissions.schema import Submission
from apps.api.app.core.ops import redact_sensitive_fields

_audit_logger = logging.getLogger("ami.audit")


def log_structured_event(event_type: str, **fields: Any) -> str:
    payload = redact_sensitive_fields({"event_type": event_type, **fields})
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    _audit_logger.info(serialized)
    return serialized


def log_submission_event(event_type: str, submission: Submission, **fields: Any) -> str:
    return log_structured_event(
        event_type,
        submission_id=submission.submission_id,
        submission_type=submission.type,
        system_id=submission.system_id,
        status=submission.status,
        **fields,
    )


def log_assessment_event(event_type: str, assessment: Mapping[str, Any], **fields: Any) -> str:
    integrity = assessment.get("integrity") or {}
    return log_structured_event(
        event_type,
        assessment_id=assessment.get("assessment_id"),
        system_id=assessment.get("system_id"),
        version=assessment.get("version"),
        assessment_hash=integrity.get("assessment_hash"),
        **fields,
    )
