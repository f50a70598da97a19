"""
Idempotency-key bookkeeping for the mutating booking endpoints.

Results are stored per (tenant, scope, key) so the one key a client keeps for
a booking attempt can safely be sent to both the hold and the confirm
endpoints. Each record keeps a fingerprint of the request body; replaying a
key with a different body is rejected instead of returning an unrelated
result.
"""

import hashlib
import json
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.errors import IdempotencyConflictError, IdempotencyKeyMissingError
from bookflow.models.idempotency import IdempotencyRecord

logger = structlog.get_logger()

SCOPE_HOLD = "hold"
SCOPE_CONFIRM = "confirm"

MAX_KEY_LENGTH = 255


def require_key(idempotency_key: Optional[str]) -> str:
    """Validate the Idempotency-Key header value"""
    key = (idempotency_key or "").strip()
    if not key or len(key) > MAX_KEY_LENGTH:
        raise IdempotencyKeyMissingError()
    return key


def request_fingerprint(payload: Dict[str, Any]) -> str:
    """Stable hash of a request body"""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


async def lookup(
    db: AsyncSession,
    tenant_id: UUID,
    scope: str,
    idempotency_key: str,
    request_hash: str,
) -> Optional[IdempotencyRecord]:
    """Return the stored record for a key, or None on first use"""
    result = await db.execute(
        select(IdempotencyRecord).where(
            IdempotencyRecord.tenant_id == tenant_id,
            IdempotencyRecord.scope == scope,
            IdempotencyRecord.idempotency_key == idempotency_key,
        )
    )
    record = result.scalar_one_or_none()

    if record and record.request_hash != request_hash:
        logger.warning(
            "Idempotency key reused with different parameters",
            tenant_id=str(tenant_id),
            scope=scope,
        )
        raise IdempotencyConflictError(details={"scope": scope})

    return record


def remember(
    db: AsyncSession,
    tenant_id: UUID,
    scope: str,
    idempotency_key: str,
    request_hash: str,
    response_json: Dict[str, Any],
    request_id: Optional[str] = None,
    status_code: int = 200,
) -> IdempotencyRecord:
    """Stage the result for a key; committed with the caller's transaction"""
    record = IdempotencyRecord(
        tenant_id=tenant_id,
        scope=scope,
        idempotency_key=idempotency_key,
        request_hash=request_hash,
        status_code=status_code,
        response_json=response_json,
        request_id=request_id,
    )
    db.add(record)
    return record
