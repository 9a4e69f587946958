from __future__ import annotations

import secrets

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MIN_CODE_LENGTH = 8
MAX_CODE_LENGTH = 32


def generate_claim_code(length: int = 10) -> str:
    if not MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH:
        raise ValueError(f"length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH}")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_claim_code(raw_code: str) -> str:
    return raw_code.strip().upper().replace(" ", "").replace("-", "")


def build_claim_url(*, base_url: str, code: str) -> str:
    return f"{base_url.rstrip('/')}/{code}"
