# backend/app/core/deps.py
import logging
from typing import Any, Dict, Optional

from databases import Database
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from ..db.database import db
from ..services.voice import (
    ActionDispatcher,
    AuthResolutionError,
    CommandRegistry,
    OutcomeRecorder,
    TranscriptionProvider,
    VoiceCommandPipeline,
    get_transcription_provider,
)
from .security import decode_access_token

logger = logging.getLogger(__name__)

# Authorization: Bearer <JWT>; eksikse 403 yerine bizim 401 cevabımız dönsün
bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------
# Altyapı
# ---------------------------
def get_db() -> Database:
    return db


def get_transcriber() -> TranscriptionProvider:
    return get_transcription_provider()


# ---------------------------
# Kimlik ve Tenant
# ---------------------------
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    database: Database = Depends(get_db),
) -> Dict[str, Any]:
    """
    JWT 'sub' (username) içinden kullanıcıyı DB'den çeker.
    Pasif/bulunamayan kullanıcı → 401, tenant'ı olmayan kullanıcı → 404.
    Dönüş: {"id": ..., "username": ..., "tenant_id": ...}
    """
    if credentials is None or not credentials.credentials:
        raise AuthResolutionError("Missing authorization", status_code=401)

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise AuthResolutionError("Invalid JWT", status_code=401)

    sub = payload.get("sub")
    if not sub:
        raise AuthResolutionError("Invalid token (no sub)", status_code=401)

    row = await database.fetch_one(
        "SELECT id, username, tenant_id, is_active FROM users WHERE username = :u",
        {"u": sub},
    )
    if not row or not row["is_active"]:
        raise AuthResolutionError("User not found or inactive", status_code=401)

    if row["tenant_id"] is None:
        logger.warning("[get_current_user] user %s has no tenant", row["username"])
        raise AuthResolutionError("User profile not found", status_code=404)

    return {"id": row["id"], "username": row["username"], "tenant_id": row["tenant_id"]}


# ---------------------------
# Sesli komut servisleri
# ---------------------------
def get_registry(database: Database = Depends(get_db)) -> CommandRegistry:
    return CommandRegistry(database)


def get_recorder(database: Database = Depends(get_db)) -> OutcomeRecorder:
    return OutcomeRecorder(database)


def get_pipeline(
    database: Database = Depends(get_db),
    transcriber: TranscriptionProvider = Depends(get_transcriber),
) -> VoiceCommandPipeline:
    """Her istek için yeni, durumsuz bir pipeline."""
    return VoiceCommandPipeline(
        registry=CommandRegistry(database),
        dispatcher=ActionDispatcher(database),
        recorder=OutcomeRecorder(database),
        transcriber=transcriber,
    )
