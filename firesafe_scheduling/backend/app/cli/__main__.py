# backend/app/cli/__main__.py
from __future__ import annotations

import argparse
import asyncio

from app.cli.seed_demo import seed_demo
from app.db import SessionLocal, create_all, engine
from app.logging_config import configure_logging
from app.services.expiry_sweeper import ExpirySweeper


async def _seed(args: argparse.Namespace) -> dict:
    if args.create_tables:
        await create_all()
    out = await seed_demo(establishment_name=args.establishment_name, owner_id=args.owner_id)
    return {
        "ok": True,
        "inspector_ids": out.inspector_ids,
        "establishment_id": out.establishment_id,
        "application_ids": out.application_ids,
    }


async def _sweep(args: argparse.Namespace) -> dict:
    ids = await ExpirySweeper(SessionLocal).sweep()
    return {"ok": True, "cancelled": ids}


async def _init_db(args: argparse.Namespace) -> dict:
    await create_all()
    return {"ok": True}


async def _run(args: argparse.Namespace) -> dict:
    try:
        return await args.run(args)
    finally:
        await engine.dispose()


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-demo", help="insert demo inspectors, an establishment and applications")
    s.add_argument("--establishment-name", default="Demo Bakery")
    s.add_argument("--owner-id", default="demo-owner")
    s.add_argument("--create-tables", action="store_true")
    s.set_defaults(run=_seed)

    w = sub.add_parser("sweep", help="cancel scheduled inspections whose day has passed")
    w.set_defaults(run=_sweep)

    i = sub.add_parser("init-db", help="create tables without alembic (local only)")
    i.set_defaults(run=_init_db)

    args = p.parse_args()
    configure_logging()
    print(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
