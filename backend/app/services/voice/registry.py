"""Tenant'a görünen aktif sesli komutları getiren kayıt defteri."""
from __future__ import annotations

from typing import List, Optional

from databases import Database

from .models import VoiceCommand

COMMAND_COLUMNS = """
    id, tenant_id, command_text, command_variations, action_type, target_page,
    min_confidence, is_active, total_uses, success_count, avg_confidence, last_used_at
"""


class CommandRegistry:
    """voice_commands tablosu üzerinde salt-okunur sorgular."""

    def __init__(self, db: Database):
        self.db = db

    async def fetch_active_commands(self, tenant_id: int) -> List[VoiceCommand]:
        """
        Tenant'ın kendi komutları + global (tenant_id NULL) komutlar, sadece aktif olanlar.
        Sıra id'ye göre artan; eşleştirmedeki eşitlik kuralı bu sıraya dayanır.
        Veritabanı hatası yukarı fırlatılır, burada retry yapılmaz.
        """
        rows = await self.db.fetch_all(
            f"""
            SELECT {COMMAND_COLUMNS}
            FROM voice_commands
            WHERE is_active = TRUE
              AND (tenant_id IS NULL OR tenant_id = :tenant_id)
            ORDER BY id ASC
            """,
            {"tenant_id": tenant_id},
        )
        return [VoiceCommand.from_row(row) for row in rows]

    async def get_command(self, command_id: int, tenant_id: int) -> Optional[VoiceCommand]:
        row = await self.db.fetch_one(
            f"""
            SELECT {COMMAND_COLUMNS}
            FROM voice_commands
            WHERE id = :id AND (tenant_id IS NULL OR tenant_id = :tenant_id)
            """,
            {"id": command_id, "tenant_id": tenant_id},
        )
        return VoiceCommand.from_row(row) if row else None
