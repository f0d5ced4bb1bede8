"""AMI maintenance CLI."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from app.ami.canonical import compute_integrity_hash
from app.ami.cli import migrate_store, scaffold_assessment, write_summary
from app.ami.loader import (
    get_default_profile,
    get_profile_by_id,
    load_assessment_file,
    load_rubrics,
    load_source_catalog,
)
from app.ami.profiles import evaluate_assessment_against_profile
from app.ami.schema import SYSTEM_CATEGORIES
from app.ami.verify import verify_store
from apps.api.app.core.config import get_settings


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="AMI assessment CLI")
    parser.add_argument("--data-root", default=str(settings.data_root))
    parser.add_argument("--source-catalog", default=str(settings.source_catalog_path))
    sub = parser.add_subparsers(dest="command", required=True)

    validate_parser = sub.add_parser("validate", help="Validate every stored assessment (CI gate)")
    validate_parser.add_argument("--meta", default=str(settings.meta_path))
    validate_parser.add_argument(
        "--summary-out",
        default="reports/ami-validation-summary.json",
        help="Where to write the JSON summary",
    )

    new_parser = sub.add_parser("new", help="Scaffold a draft assessment for a system")
    new_parser.add_argument("system_id")
    new_parser.add_argument("--category", choices=SYSTEM_CATEGORIES, default="cloud_autonomous")
    new_parser.add_argument("--assessed-by", default="ami-editorial")

    migrate_parser = sub.add_parser(
        "migrate-source-ids", help="Rewrite legacy evidence source_id to source_ids"
    )
    migrate_parser.add_argument("--dry-run", action="store_true")

    hash_parser = sub.add_parser("hash", help="Print the integrity block for an assessment file")
    hash_parser.add_argument("path")

    evaluate_parser = sub.add_parser("evaluate", help="Evaluate an assessment file against a profile")
    evaluate_parser.add_argument("path")
    evaluate_parser.add_argument("--profile", default=None)
    evaluate_parser.add_argument("--profiles-path", default=str(settings.profiles_path))

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    data_root = Path(args.data_root)

    if args.command == "validate":
        summary = verify_store(
            data_root,
            source_catalog=load_source_catalog(Path(args.source_catalog)),
            rubrics=load_rubrics(Path(args.meta)),
        )
        payload = summary.as_payload()
        write_summary(Path(args.summary_out), payload)
        print(json.dumps(payload, indent=2))
        return 0 if summary.ok else 1

    if args.command == "new":
        assessment = scaffold_assessment(
            data_root,
            system_id=args.system_id,
            category=args.category,
            assessed_by=args.assessed_by,
        )
        print(
            json.dumps(
                {
                    "assessment_id": assessment["assessment_id"],
                    "version": assessment["version"],
                    "status": assessment["status"],
                },
                indent=2,
            )
        )
        return 0

    if args.command == "migrate-source-ids":
        migrated = migrate_store(data_root, dry_run=args.dry_run)
        print(json.dumps({"migrated": migrated, "dry_run": args.dry_run}, indent=2))
        return 0

    if args.command == "hash":
        assessment = load_assessment_file(Path(args.path))
        print(json.dumps(compute_integrity_hash(assessment), indent=2))
        return 0

    if args.command == "evaluate":
        profiles_path = Path(args.profiles_path)
        profile = (
            get_profile_by_id(profiles_path, args.profile)
            if args.profile
            else get_default_profile(profiles_path)
        )
        if profile is None:
            parser.error(f"profile not found: {args.profile or '<default>'}")
        assessment = load_assessment_file(Path(args.path))
        result = evaluate_assessment_against_profile(
            assessment,
            load_source_catalog(Path(args.source_catalog)),
            profile,
        )
        print(json.dumps({"profile_id": profile.id, **result.as_payload()}, indent=2))
        return 0 if result.passed else 1

    parser.error(f"Unknown command: {args.command}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
