"""Catalog, rubric and profile inputs resolved from configured paths."""

from __future__ import annotations

from dataclasses import dataclass

from app.ami.gates import Rubrics
from app.ami.loader import get_default_profile, get_profile_by_id, load_rubrics, load_source_catalog
from app.ami.schema import ComplianceProfile, SourceCatalog
from apps.api.app.core.config import Settings


@dataclass(frozen=True)
class ReferenceData:
    source_catalog: SourceCatalog
    rubrics: Rubrics | None

    @property
    def catalog_or_none(self) -> SourceCatalog | None:
        # A missing or empty catalog file skips the score-5 source gate.
        return self.source_catalog or None


def load_reference_data(settings: Settings) -> ReferenceData:
    return ReferenceData(
        source_catalog=load_source_catalog(settings.source_catalog_path),
        rubrics=load_rubrics(settings.meta_path),
    )


def resolve_profile(settings: Settings, profile_id: str | None) -> ComplianceProfile | None:
    if profile_id:
        return get_profile_by_id(settings.profiles_path, profile_id)
    return get_default_profile(settings.profiles_path)
