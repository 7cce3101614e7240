# backend/app/routers/voice.py
"""
Sesli Komut Router
Ses kaydı veya hazır metin → komut eşleştirme → aksiyon → denetim logu
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any

from ..core.deps import get_current_user, get_pipeline, get_recorder, get_registry
from ..services.voice import CommandRegistry, InvocationStatus, OutcomeRecorder, VoiceCommandPipeline

router = APIRouter(prefix="/voice", tags=["Sesli Komut"])


class VoiceCommandIn(BaseModel):
    """Ses girişi: audio_base64 veya audio_url'den tam olarak biri"""
    audio_base64: Optional[str] = Field(None, description="Base64 kodlu ses (webm)")
    audio_url: Optional[str] = Field(None, description="İndirilecek ses dosyası URL'i")
    language: Optional[str] = Field(None, max_length=10, description="Dil kodu (varsayılan: tr)")


class TextCommandIn(BaseModel):
    """İstemcide tanınmış metin"""
    text: str = Field("", max_length=1000)
    language: Optional[str] = Field(None, max_length=10)


class VoiceCommandOut(BaseModel):
    id: int
    tenant_id: Optional[int]
    command_text: str
    command_variations: List[str]
    action_type: str
    target_page: Optional[str]
    min_confidence: float
    is_active: bool
    total_uses: int
    success_count: int
    avg_confidence: float
    last_used_at: Optional[str]


class VoiceLogOut(BaseModel):
    id: int
    tenant_id: int
    user_id: Optional[int]
    command_id: Optional[int]
    transcript: str
    matched_command: Optional[str]
    confidence_score: float
    recognition_provider: Optional[str]
    status: str
    action_taken: Optional[str]
    execution_result: Optional[Dict[str, Any]]
    error_message: Optional[str]
    recognition_time_ms: Optional[int]
    execution_time_ms: Optional[int]
    created_at: Optional[str]


class VoiceStatisticsOut(BaseModel):
    total_invocations: int
    by_status: Dict[str, int]
    avg_confidence: Optional[float]
    avg_execution_ms: Optional[float]
    top_commands: List[Dict[str, Any]]


def _bad_request(details: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@router.post("/command")
async def voice_command(
    payload: VoiceCommandIn,
    user: Dict[str, Any] = Depends(get_current_user),
    pipeline: VoiceCommandPipeline = Depends(get_pipeline),
):
    """
    Ses kaydını metne çevirip komutu çalıştırır.

    **Cevaplar:**
    - 200 `success=true`: komut eşleşti ve çalıştı
    - 200 `success=false`: komut tanınmadı, `suggestions` ile birlikte
    - 400: audio_base64 / audio_url ikisi birden veya hiçbiri
    - 500: transkripsiyon veya komut çalıştırma hatası
    """
    has_base64 = bool(payload.audio_base64)
    has_url = bool(payload.audio_url)
    if has_base64 == has_url:
        if has_base64:
            return _bad_request("Provide only one of audio_base64 or audio_url")
        return _bad_request("Missing audio_base64 or audio_url")

    outcome = await pipeline.run_audio(
        tenant_id=user["tenant_id"],
        user_id=user["id"],
        audio_base64=payload.audio_base64,
        audio_url=payload.audio_url,
        language=payload.language,
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/text")
async def text_command(
    payload: TextCommandIn,
    user: Dict[str, Any] = Depends(get_current_user),
    pipeline: VoiceCommandPipeline = Depends(get_pipeline),
):
    """Tarayıcı tarafında tanınmış metinle aynı akış (transkripsiyon atlanır)."""
    outcome = await pipeline.run_text(tenant_id=user["tenant_id"], user_id=user["id"], text=payload.text)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/commands", response_model=List[VoiceCommandOut])
async def list_commands(
    user: Dict[str, Any] = Depends(get_current_user),
    registry: CommandRegistry = Depends(get_registry),
):
    """Tenant'a görünen aktif komutlar (global + tenant'a özel), istatistikleriyle"""
    commands = await registry.fetch_active_commands(user["tenant_id"])
    return [c.to_dict() for c in commands]


@router.get("/logs", response_model=List[VoiceLogOut])
async def list_logs(
    status: Optional[InvocationStatus] = Query(None, description="success | failed | rejected"),
    command_id: Optional[int] = Query(None, description="Komut ID filtresi"),
    limit: int = Query(100, ge=1, le=500, description="Maksimum kayıt sayısı"),
    offset: int = Query(0, ge=0, description="Sayfa kaydırma"),
    user: Dict[str, Any] = Depends(get_current_user),
    recorder: OutcomeRecorder = Depends(get_recorder),
):
    """
    Sesli komut loglarını en yeniden eskiye getir

    **Örnek Kullanım:**
    ```
    GET /voice/logs?status=rejected&limit=20
    ```
    """
    return await recorder.get_logs(
        tenant_id=user["tenant_id"],
        status=status.value if status else None,
        command_id=command_id,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=VoiceStatisticsOut)
async def voice_statistics(
    user: Dict[str, Any] = Depends(get_current_user),
    recorder: OutcomeRecorder = Depends(get_recorder),
):
    """Durum bazında istek sayıları, ortalama güven ve en çok kullanılan komutlar"""
    return await recorder.get_statistics(user["tenant_id"])
