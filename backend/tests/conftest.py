# backend/tests/conftest.py
import json
from datetime import datetime, timezone
from typing import List, Optional

import pytest
import pytest_asyncio
from databases import Database

from app.db.schema import create_tables
from app.services.voice import persistence_monitor

# Sabit "şimdi": İstanbul'da 2026-10-19 12:00
FIXED_NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class DataFactory:
    """Testler için küçük satır üreticisi. Her metod eklenen satırın id'sini döner."""

    def __init__(self, db: Database):
        self.db = db

    async def tenant(self, name: str = "Demo İşletme") -> int:
        return await self.db.execute("INSERT INTO tenants (name) VALUES (:name)", {"name": name})

    async def user(self, username: str, tenant_id: Optional[int], is_active: bool = True) -> int:
        return await self.db.execute(
            "INSERT INTO users (username, role, tenant_id, is_active) VALUES (:u, 'admin', :t, :a)",
            {"u": username, "t": tenant_id, "a": is_active},
        )

    async def command(
        self,
        command_text: str,
        action_type: str = "SHOW_DAILY_ORDERS",
        tenant_id: Optional[int] = None,
        variations: Optional[List[str]] = None,
        target_page: Optional[str] = None,
        min_confidence: float = 0.8,
        is_active: bool = True,
        total_uses: int = 0,
        avg_confidence: float = 0.0,
    ) -> int:
        return await self.db.execute(
            """
            INSERT INTO voice_commands (
                tenant_id, command_text, command_variations, action_type, target_page,
                min_confidence, is_active, total_uses, success_count, avg_confidence
            )
            VALUES (:tenant_id, :text, :variations, :action, :page, :min_conf, :active, :uses, :uses, :avg)
            """,
            {
                "tenant_id": tenant_id,
                "text": command_text,
                "variations": json.dumps(variations or [], ensure_ascii=False),
                "action": action_type,
                "page": target_page,
                "min_conf": min_confidence,
                "active": is_active,
                "uses": total_uses,
                "avg": avg_confidence,
            },
        )

    async def order(self, tenant_id: int, created_at: datetime, total_amount: float = 100.0, number: str = "S-1") -> int:
        return await self.db.execute(
            """
            INSERT INTO orders (tenant_id, order_number, customer_name, status, total_amount, created_at)
            VALUES (:t, :n, 'Müşteri', 'completed', :amount, :created_at)
            """,
            {"t": tenant_id, "n": number, "amount": total_amount, "created_at": created_at},
        )

    async def product(self, tenant_id: int, name: str, stock_quantity: int = 10, sales_count: int = 0) -> int:
        return await self.db.execute(
            """
            INSERT INTO products (tenant_id, name, sku, price, stock_quantity, sales_count)
            VALUES (:t, :name, :sku, 10, :stock, :sales)
            """,
            {"t": tenant_id, "name": name, "sku": name.upper(), "stock": stock_quantity, "sales": sales_count},
        )

    async def ticket(self, tenant_id: int, subject: str, status: str = "open") -> int:
        return await self.db.execute(
            "INSERT INTO support_tickets (tenant_id, subject, status) VALUES (:t, :s, :st)",
            {"t": tenant_id, "s": subject, "st": status},
        )

    async def count_logs(self, **filters) -> int:
        clauses = " AND ".join(f"{key} = :{key}" for key in filters) or "1 = 1"
        row = await self.db.fetch_one(f"SELECT COUNT(*) AS total FROM voice_command_logs WHERE {clauses}", filters)
        return int(row["total"])


@pytest_asyncio.fixture
async def database(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'voice_test.db'}")
    await database.connect()
    await create_tables(database)
    yield database
    await database.disconnect()


@pytest.fixture
def factory(database):
    return DataFactory(database)


@pytest.fixture(autouse=True)
def reset_persistence_monitor():
    persistence_monitor.reset()
    yield
    persistence_monitor.reset()
