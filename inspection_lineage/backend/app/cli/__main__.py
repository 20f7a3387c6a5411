# backend/app/cli/__main__.py
from __future__ import annotations

import argparse
import json
import sys

from app.cli.seed_demo import seed_demo
from app.db import SessionLocal, init_db
from app.domain.lineage import summarize_checklist
from app.logging_config import configure_logging
from app.services.inspections import inventory_type_names, vendor_type_names
from app.services.lineage import resolve_checklist
from app.services.record_store import SqlRecordStore


def _cmd_init_db(args: argparse.Namespace) -> dict:
    init_db()
    return {"ok": True}


def _cmd_seed_demo(args: argparse.Namespace) -> dict:
    init_db()
    out = seed_demo(
        user_email=args.user_email,
        user_name=args.user_name,
        address=args.address,
        with_follow_up=(not args.no_follow_up),
    )
    return {
        "ok": True,
        "user_id": out.user_id,
        "user_email": out.user_email,
        "property_id": out.property_id,
        "root_inspection_id": out.root_inspection_id,
        "follow_up_inspection_id": out.follow_up_inspection_id,
    }


def _cmd_resolve(args: argparse.Namespace) -> dict:
    db = SessionLocal()
    try:
        resolved = resolve_checklist(SqlRecordStore(db), args.inspection_id, policy=args.policy)
        summary = summarize_checklist(
            resolved.items,
            inventory_names=inventory_type_names(db),
            vendor_names=vendor_type_names(db),
        )
        return {
            "inspection_id": resolved.inspection_id,
            "chain": resolved.chain,
            "policy": resolved.policy,
            "subtasks": [
                {
                    "id": int(r.task.id),
                    "room_name": r.task.room_name,
                    "description": r.task.description,
                    "status": r.task.status,
                    "completed": bool(r.task.completed),
                    "original_inspection_id": int(r.task.original_inspection_id),
                    "inherited": r.inherited,
                }
                for r in resolved.items
            ],
            "summary": summary.as_dict(),
        }
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    p.add_argument("--log-level", default=None)
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("init-db", help="create tables")
    sp.set_defaults(func=_cmd_init_db)

    sp = sub.add_parser("seed-demo", help="seed a demo inspection chain")
    sp.add_argument("--user-email", default="inspector@demo.local")
    sp.add_argument("--user-name", default="Demo Inspector")
    sp.add_argument("--address", default="12 Elm St")
    sp.add_argument("--no-follow-up", action="store_true")
    sp.set_defaults(func=_cmd_seed_demo)

    sp = sub.add_parser("resolve", help="print the resolved checklist of an inspection")
    sp.add_argument("inspection_id", type=int)
    sp.add_argument("--policy", choices=["leaf_wins", "root_wins"], default=None)
    sp.set_defaults(func=_cmd_resolve)

    args = p.parse_args(argv)
    # stdout carries the command result
    configure_logging(args.log_level, stream=sys.stderr)
    print(json.dumps(args.func(args), indent=2, default=str))


if __name__ == "__main__":
    main()
