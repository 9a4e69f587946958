from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
from uuid import UUID

from loyalty.db.models.pos_api_keys import PosApiKey
from loyalty.db.repo.pos_api_keys_repo import PosApiKeysRepo
from loyalty.db.repo.programs_repo import ProgramsRepo
from loyalty.db.session import SessionLocal
from loyalty.services.pos_auth import generate_pos_api_key, hash_pos_api_key, pos_api_key_prefix

PROGRAM_STATUSES = ("ACTIVE", "SUSPENDED")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="POS API key and program status tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="issue a new POS API key for a program")
    create.add_argument("--program-id", type=UUID, required=True)
    create.add_argument("--label")

    revoke = subparsers.add_parser("revoke", help="deactivate an existing POS API key")
    revoke.add_argument("--api-key-id", type=int, required=True)

    status = subparsers.add_parser("program-status", help="suspend or reactivate a program")
    status.add_argument("--program-id", type=UUID, required=True)
    status.add_argument("--status", choices=PROGRAM_STATUSES, required=True)
    return parser.parse_args(argv)


async def _create_key(*, program_id: UUID, label: str | None) -> int:
    now_utc = datetime.now(timezone.utc)
    raw_key = generate_pos_api_key()
    async with SessionLocal.begin() as session:
        program = await ProgramsRepo.get_by_id(session, program_id)
        if program is None:
            raise ValueError(f"program not found: {program_id}")
        api_key = await PosApiKeysRepo.create(
            session,
            api_key=PosApiKey(
                program_id=program.id,
                key_hash=hash_pos_api_key(raw_key),
                key_prefix=pos_api_key_prefix(raw_key),
                label=label,
                is_active=True,
                created_at=now_utc,
            ),
        )

    # The raw key is shown once and never stored.
    print(f"api_key_id={api_key.id} program_id={program_id} api_key={raw_key}")  # noqa: T201
    return 0


async def _revoke_key(*, api_key_id: int) -> int:
    async with SessionLocal.begin() as session:
        revoked = await PosApiKeysRepo.deactivate(session, api_key_id=api_key_id)
    print(f"api_key_id={api_key_id} revoked={revoked}")  # noqa: T201
    return 0 if revoked else 1


async def _set_program_status(*, program_id: UUID, status: str) -> int:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        program = await ProgramsRepo.get_by_id_for_update(session, program_id)
        if program is None:
            raise ValueError(f"program not found: {program_id}")
        await ProgramsRepo.set_status(session, program=program, status=status, now_utc=now_utc)
    print(f"program_id={program_id} status={status}")  # noqa: T201
    return 0


async def _run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.command == "create":
        return await _create_key(program_id=args.program_id, label=args.label)
    if args.command == "revoke":
        return await _revoke_key(api_key_id=args.api_key_id)
    return await _set_program_status(program_id=args.program_id, status=args.status)


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
