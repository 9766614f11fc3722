"""LLM provider keys, super-admin only. Key values never leave the API unmasked."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orthoplan.auth.deps import require_app_access, require_super_admin
from orthoplan.database import get_db
from orthoplan.models.ai_key import AiApiKey
from orthoplan.schemas.admin import AiKeyCreate, AiKeyOut, AiKeyUpdate
from orthoplan.services.catalog import PORTAL

router = APIRouter(
    dependencies=[Depends(require_app_access(PORTAL)), Depends(require_super_admin)]
)


def mask_key(key: str) -> str:
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}{'*' * (len(key) - 8)}{key[-4:]}"


def _to_out(row: AiApiKey) -> AiKeyOut:
    return AiKeyOut(
        id=row.id,
        provider=row.provider,
        masked_key=mask_key(row.key),
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


async def _get_key(db: AsyncSession, key_id: str) -> AiApiKey:
    row = (await db.execute(select(AiApiKey).where(AiApiKey.id == key_id))).scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="API key not found")
    return row


@router.get("/", response_model=list[AiKeyOut])
async def list_keys(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(AiApiKey).order_by(AiApiKey.created_at.desc()))
    return [_to_out(k) for k in result.scalars().all()]


@router.post("/", response_model=AiKeyOut, status_code=201)
async def create_key(body: AiKeyCreate, db: AsyncSession = Depends(get_db)):
    row = AiApiKey(provider=body.provider, key=body.key, is_active=True)
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return _to_out(row)


@router.put("/{key_id}", response_model=AiKeyOut)
async def update_key(key_id: str, body: AiKeyUpdate, db: AsyncSession = Depends(get_db)):
    row = await _get_key(db, key_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(row, field, value)
    await db.flush()
    await db.refresh(row)
    return _to_out(row)


@router.delete("/{key_id}", status_code=204)
async def delete_key(key_id: str, db: AsyncSession = Depends(get_db)):
    row = await _get_key(db, key_id)
    await db.delete(row)
    await db.flush()
