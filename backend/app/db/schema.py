import json
import logging
from typing import Dict, List

from databases import Database

# Bu dosya temel tabloları güvenli şekilde oluşturur (IF NOT EXISTS).
# DDL PostgreSQL için yazıldı; lokal deneme ve testlerde aynı şema SQLite'a çevrilerek kurulur.

DIALECT_TYPES: Dict[str, Dict[str, str]] = {
    "postgresql": {
        "pk": "BIGSERIAL PRIMARY KEY",
        "json": "JSONB",
        "ts": "TIMESTAMPTZ",
        "now": "NOW()",
    },
    "sqlite": {
        "pk": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "json": "TEXT",
        "ts": "TIMESTAMP",
        "now": "CURRENT_TIMESTAMP",
    },
}

CREATE_TENANTS = """
CREATE TABLE IF NOT EXISTS tenants (
    id {pk},
    name TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at {ts} DEFAULT {now}
)
"""

CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id {pk},
    username TEXT UNIQUE NOT NULL,
    role TEXT,
    tenant_id BIGINT REFERENCES tenants(id) ON DELETE SET NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at {ts} DEFAULT {now}
)
"""

# tenant_id NULL => tüm tenant'lara açık (global) komut
CREATE_VOICE_COMMANDS = """
CREATE TABLE IF NOT EXISTS voice_commands (
    id {pk},
    tenant_id BIGINT REFERENCES tenants(id) ON DELETE CASCADE,
    command_text TEXT NOT NULL,
    command_variations {json} NOT NULL DEFAULT '[]',
    action_type TEXT NOT NULL,
    target_page TEXT,
    min_confidence DOUBLE PRECISION NOT NULL DEFAULT 0.8
        CHECK (min_confidence >= 0 AND min_confidence <= 1),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    total_uses INTEGER NOT NULL DEFAULT 0,
    success_count INTEGER NOT NULL DEFAULT 0,
    avg_confidence DOUBLE PRECISION NOT NULL DEFAULT 0,
    last_used_at {ts},
    created_at {ts} DEFAULT {now}
)
"""

# Append-only: satırlar bir kez yazılır, hiç güncellenmez.
CREATE_VOICE_COMMAND_LOGS = """
CREATE TABLE IF NOT EXISTS voice_command_logs (
    id {pk},
    tenant_id BIGINT NOT NULL,
    user_id BIGINT,
    command_id BIGINT REFERENCES voice_commands(id) ON DELETE SET NULL,
    transcript TEXT NOT NULL DEFAULT '',
    matched_command TEXT,
    confidence_score DOUBLE PRECISION NOT NULL DEFAULT 0,
    recognition_provider TEXT,
    status TEXT NOT NULL CHECK (status IN ('success', 'failed', 'rejected')),
    action_taken TEXT,
    execution_result {json},
    error_message TEXT,
    recognition_time_ms INTEGER,
    execution_time_ms INTEGER,
    created_at {ts} NOT NULL DEFAULT {now},
    CHECK ((status = 'success') = (execution_time_ms IS NOT NULL))
)
"""

CREATE_ORDERS = """
CREATE TABLE IF NOT EXISTS orders (
    id {pk},
    tenant_id BIGINT NOT NULL,
    order_number TEXT,
    customer_name TEXT,
    status TEXT DEFAULT 'pending',
    total_amount NUMERIC(12,2) DEFAULT 0,
    created_at {ts} NOT NULL DEFAULT {now}
)
"""

CREATE_PRODUCTS = """
CREATE TABLE IF NOT EXISTS products (
    id {pk},
    tenant_id BIGINT NOT NULL,
    name TEXT NOT NULL,
    sku TEXT,
    price NUMERIC(12,2) DEFAULT 0,
    stock_quantity INTEGER NOT NULL DEFAULT 0,
    sales_count INTEGER NOT NULL DEFAULT 0,
    created_at {ts} DEFAULT {now}
)
"""

CREATE_SUPPORT_TICKETS = """
CREATE TABLE IF NOT EXISTS support_tickets (
    id {pk},
    tenant_id BIGINT NOT NULL,
    subject TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'open',
    priority TEXT DEFAULT 'normal',
    created_at {ts} DEFAULT {now}
)
"""

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_users_tenant ON users (tenant_id)",
    "CREATE INDEX IF NOT EXISTS idx_voice_commands_tenant_active ON voice_commands (tenant_id, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_voice_logs_tenant_created ON voice_command_logs (tenant_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_voice_logs_command ON voice_command_logs (command_id)",
    "CREATE INDEX IF NOT EXISTS idx_voice_logs_status ON voice_command_logs (status)",
    "CREATE INDEX IF NOT EXISTS idx_orders_tenant_created ON orders (tenant_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_products_tenant ON products (tenant_id)",
    "CREATE INDEX IF NOT EXISTS idx_support_tickets_tenant_status ON support_tickets (tenant_id, status)",
]

TABLES = [
    CREATE_TENANTS,
    CREATE_USERS,
    CREATE_VOICE_COMMANDS,
    CREATE_VOICE_COMMAND_LOGS,
    CREATE_ORDERS,
    CREATE_PRODUCTS,
    CREATE_SUPPORT_TICKETS,
]

DEFAULT_COMMANDS: List[Dict[str, object]] = [
    {
        "command_text": "bugünkü siparişleri göster",
        "variations": ["bugünkü siparişleri listele", "bugün kaç sipariş var"],
        "action_type": "SHOW_DAILY_ORDERS",
        "target_page": "/orders?filter=today",
        "min_confidence": 0.8,
    },
    {
        "command_text": "stokta olmayan ürünleri listele",
        "variations": ["tükenen ürünleri göster", "stokta ne kalmadı"],
        "action_type": "LIST_OUT_OF_STOCK",
        "target_page": "/inventory?filter=out_of_stock",
        "min_confidence": 0.8,
    },
    {
        "command_text": "haftalık satış raporu oluştur",
        "variations": ["bu haftanın raporunu hazırla", "haftalık özet"],
        "action_type": "GENERATE_WEEKLY_REPORT",
        "target_page": "/reports?type=weekly",
        "min_confidence": 0.75,
    },
    {
        "command_text": "müşteri destek durumunu kontrol et",
        "variations": ["destek durumu nedir", "açık ticket sayısı"],
        "action_type": "CHECK_SUPPORT_STATUS",
        "target_page": "/support",
        "min_confidence": 0.75,
    },
    {
        "command_text": "en çok satan ürünleri göster",
        "variations": ["en popüler ürünler neler", "best seller listesi"],
        "action_type": "SHOW_BEST_SELLERS",
        "target_page": "/products?sort=best_sellers",
        "min_confidence": 0.8,
    },
]


def render_ddl(dialect: str) -> List[str]:
    """Bağlı veritabanının diyalektine göre CREATE ifadelerini üretir."""
    types = DIALECT_TYPES.get(dialect, DIALECT_TYPES["postgresql"])
    return [stmt.format(**types).strip() for stmt in TABLES] + list(CREATE_INDEXES)


async def create_tables(db: Database) -> None:
    # asyncpg/sqlite tek execute'ta birden fazla komuta izin vermez; tek tek çalıştır.
    for stmt in render_ddl(db.url.dialect):
        await db.execute(stmt)
    logging.info("Voice command schema ensured (%s)", db.url.dialect)


async def seed_default_commands(db: Database) -> int:
    """Hiç global komut yoksa varsayılan komut kütüphanesini ekler. Eklenen komut sayısını döner."""
    existing = await db.fetch_one(
        "SELECT id FROM voice_commands WHERE tenant_id IS NULL LIMIT 1"
    )
    if existing:
        logging.info("Global voice commands already exist, skipping seed")
        return 0

    await db.execute_many(
        """
        INSERT INTO voice_commands (
            tenant_id, command_text, command_variations, action_type,
            target_page, min_confidence, is_active
        )
        VALUES (
            NULL, :command_text, :variations, :action_type,
            :target_page, :min_confidence, TRUE
        )
        """,
        [
            {
                "command_text": cmd["command_text"],
                "variations": json.dumps(cmd["variations"], ensure_ascii=False),
                "action_type": cmd["action_type"],
                "target_page": cmd["target_page"],
                "min_confidence": cmd["min_confidence"],
            }
            for cmd in DEFAULT_COMMANDS
        ],
    )
    logging.info("Seeded %d default voice commands", len(DEFAULT_COMMANDS))
    return len(DEFAULT_COMMANDS)
