"""Seed an organization's starter merge fields and default waiver (idempotent).

Usage examples:
  python scripts/seed_waiver_defaults.py --org org-123 --academy-name "Iron Fist Dojo"
  DATABASE_URL=postgresql://... python scripts/seed_waiver_defaults.py --org org-123 --dry-run

Behavior:
  - Creates academy_name, academy_address and contact_phone merge fields when missing.
  - Creates a default "Standard Liability Waiver" template (version 1) when the
    organization has no default yet.
  - Safe to re-run; existing rows are left alone.
"""
from __future__ import annotations
import argparse
import os
import sys
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append(str(Path(__file__).resolve().parents[1]))
from waiver_app.db import Base  # noqa: E402
from waiver_app.exceptions import NotFoundException  # noqa: E402
from waiver_app.models.merge_field import WaiverMergeField  # noqa: E402
from waiver_app.schemas.merge_field import MergeFieldCreate  # noqa: E402
from waiver_app.schemas.waiver import WaiverTemplateCreate  # noqa: E402
from waiver_app.services import merge_fields, waiver_templates  # noqa: E402

DEFAULT_WAIVER = (
    "<p>I acknowledge that martial arts and fitness training at <academy_name> involve "
    "physical contact, strenuous exercise and a risk of injury, including serious injury.</p>"
    "<p>I voluntarily assume all risks of participating in classes, open mats, seminars and "
    "events held at <academy_address>, and I release <academy_name>, its owners, instructors "
    "and staff from any liability for injury or loss arising from my participation.</p>"
    "<p>I confirm that I am physically able to train and will inform staff at "
    "<contact_phone> of any condition that affects my ability to participate safely.</p>"
)


def parse_args():
    p = argparse.ArgumentParser()
    p.add_argument("--url", default=os.getenv("DATABASE_URL"), help="Database URL (env DATABASE_URL by default)")
    p.add_argument("--org", required=True, help="Organization id to seed")
    p.add_argument("--academy-name", default="Our Academy")
    p.add_argument("--academy-address", default="our facility")
    p.add_argument("--contact-phone", default="the front desk")
    p.add_argument("--create-tables", action="store_true", help="Create tables first (local SQLite only)")
    p.add_argument("--dry-run", action="store_true", help="Report what would be created without writing")
    return p.parse_args()


def main():
    args = parse_args()
    if not args.url:
        print("ERROR: Provide --url or set DATABASE_URL", file=sys.stderr)
        sys.exit(2)

    print(f"[seed_waiver_defaults] Connecting to database: {args.url}")
    engine = create_engine(args.url)
    if args.create_tables:
        Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()

    fields = {
        "academy_name": ("Academy Name", args.academy_name),
        "academy_address": ("Academy Address", args.academy_address),
        "contact_phone": ("Contact Phone", args.contact_phone),
    }
    try:
        existing = {
            f.key for f in session.query(WaiverMergeField).filter(WaiverMergeField.organization_id == args.org)
        }
        for key, (label, value) in fields.items():
            if key in existing:
                print(f"Merge field <{key}> already present")
                continue
            if args.dry_run:
                print(f"Would create merge field <{key}> = {value!r}")
                continue
            merge_fields.create_merge_field(
                session, args.org, MergeFieldCreate(key=key, label=label, default_value=value), "seed"
            )
            print(f"Created merge field <{key}>")

        try:
            tpl = waiver_templates.get_default_template(session, args.org)
            print(f"Default waiver already configured (id={tpl.id} version={tpl.current_version})")
        except NotFoundException:
            if args.dry_run:
                print("Would create default waiver template")
            else:
                tpl = waiver_templates.create_template(
                    session,
                    args.org,
                    WaiverTemplateCreate(name="Standard Liability Waiver", content=DEFAULT_WAIVER, is_default=True),
                    "seed",
                )
                print(f"Created default waiver template id={tpl.id}")
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover
    main()
