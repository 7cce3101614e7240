"""
Eşleşen komutun aksiyonunu çalıştıran dağıtıcı.

Her ActionType tek bir handler'a bağlıdır; tablo modül yüklenirken kurulur.
Handler'lar tenant'a ait verileri sadece okur, iş verisini asla değiştirmez.
Tabloda olmayan aksiyon tipleri varsayılan handler'a düşer.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, Tuple
from zoneinfo import ZoneInfo

from databases import Database

from ...core.config import settings
from ...core.logging_config import get_logger
from .exceptions import ExecutionError
from .models import ActionType, ExecutionResult, VoiceCommand, utcnow

logger = get_logger(__name__)

DEFAULT_NAVIGATE_TO = "/dashboard"

ORDER_COLUMNS = ("id", "order_number", "customer_name", "status", "total_amount", "created_at")
STOCK_COLUMNS = ("id", "name", "sku", "stock_quantity")
TICKET_COLUMNS = ("id", "subject", "status", "priority", "created_at")
BEST_SELLER_COLUMNS = ("id", "name", "sku", "sales_count")


@dataclass
class HandlerContext:
    db: Database
    command: VoiceCommand
    tenant_id: int
    now: datetime


Handler = Callable[[HandlerContext], Awaitable[ExecutionResult]]


def _rows_to_dicts(rows: Sequence[Mapping[str, Any]], columns: Tuple[str, ...]) -> List[Dict[str, Any]]:
    return [{col: row[col] for col in columns} for row in rows]


def _report_tz() -> tzinfo:
    name = settings.VOICE_REPORT_TIMEZONE or "UTC"
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Rapor saat dilimine göre bugünün [başlangıç, ertesi gün başlangıcı) aralığı, UTC olarak."""
    local_now = now.astimezone(_report_tz())
    start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


async def _count(db: Database, query: str, params: Dict[str, Any]) -> int:
    row = await db.fetch_one(query, params)
    return int(row["total"] or 0) if row else 0


async def show_daily_orders(ctx: HandlerContext) -> ExecutionResult:
    start, end = day_bounds(ctx.now)
    params = {"tenant_id": ctx.tenant_id, "start": start, "end": end}
    where = "tenant_id = :tenant_id AND created_at >= :start AND created_at < :end"

    count = await _count(ctx.db, f"SELECT COUNT(*) AS total FROM orders WHERE {where}", params)
    rows = await ctx.db.fetch_all(
        f"""
        SELECT {", ".join(ORDER_COLUMNS)}
        FROM orders
        WHERE {where}
        ORDER BY created_at DESC, id DESC
        LIMIT :limit
        """,
        {**params, "limit": settings.VOICE_RESULT_LIMIT},
    )
    return ExecutionResult(
        action=ActionType.SHOW_DAILY_ORDERS.value,
        data=_rows_to_dicts(rows, ORDER_COLUMNS),
        count=count,
        message=f"Bugün {count} sipariş var.",
        navigate_to="/orders?filter=today",
    )


async def list_out_of_stock(ctx: HandlerContext) -> ExecutionResult:
    params = {"tenant_id": ctx.tenant_id}
    where = "tenant_id = :tenant_id AND stock_quantity <= 0"

    count = await _count(ctx.db, f"SELECT COUNT(*) AS total FROM products WHERE {where}", params)
    rows = await ctx.db.fetch_all(
        f"""
        SELECT {", ".join(STOCK_COLUMNS)}
        FROM products
        WHERE {where}
        ORDER BY name ASC, id ASC
        LIMIT :limit
        """,
        {**params, "limit": settings.VOICE_RESULT_LIMIT},
    )
    return ExecutionResult(
        action=ActionType.LIST_OUT_OF_STOCK.value,
        data=_rows_to_dicts(rows, STOCK_COLUMNS),
        count=count,
        message=f"{count} ürün stokta kalmadı.",
        navigate_to="/inventory?filter=out_of_stock",
    )


async def generate_weekly_report(ctx: HandlerContext) -> ExecutionResult:
    period_end = ctx.now
    period_start = period_end - timedelta(days=7)
    row = await ctx.db.fetch_one(
        """
        SELECT COUNT(*) AS total, COALESCE(SUM(total_amount), 0) AS amount
        FROM orders
        WHERE tenant_id = :tenant_id AND created_at >= :start AND created_at < :end
        """,
        {"tenant_id": ctx.tenant_id, "start": period_start, "end": period_end},
    )
    count = int(row["total"] or 0) if row else 0
    amount = float(row["amount"] or 0) if row else 0.0
    return ExecutionResult(
        action=ActionType.GENERATE_WEEKLY_REPORT.value,
        data={
            "period_start": period_start,
            "period_end": period_end,
            "order_count": count,
            "total_amount": round(amount, 2),
        },
        count=count,
        message=f"Haftalık rapor oluşturuluyor: son 7 günde {count} sipariş.",
        navigate_to="/reports?type=weekly",
    )


async def check_support_status(ctx: HandlerContext) -> ExecutionResult:
    params = {"tenant_id": ctx.tenant_id}
    where = "tenant_id = :tenant_id AND status = 'open'"

    count = await _count(ctx.db, f"SELECT COUNT(*) AS total FROM support_tickets WHERE {where}", params)
    rows = await ctx.db.fetch_all(
        f"""
        SELECT {", ".join(TICKET_COLUMNS)}
        FROM support_tickets
        WHERE {where}
        ORDER BY created_at DESC, id DESC
        LIMIT :limit
        """,
        {**params, "limit": settings.VOICE_RESULT_LIMIT},
    )
    return ExecutionResult(
        action=ActionType.CHECK_SUPPORT_STATUS.value,
        data=_rows_to_dicts(rows, TICKET_COLUMNS),
        count=count,
        message=f"{count} açık destek talebi var.",
        navigate_to="/support",
    )


async def show_best_sellers(ctx: HandlerContext) -> ExecutionResult:
    rows = await ctx.db.fetch_all(
        f"""
        SELECT {", ".join(BEST_SELLER_COLUMNS)}
        FROM products
        WHERE tenant_id = :tenant_id
        ORDER BY sales_count DESC, id ASC
        LIMIT :limit
        """,
        {"tenant_id": ctx.tenant_id, "limit": settings.VOICE_BEST_SELLER_LIMIT},
    )
    products = _rows_to_dicts(rows, BEST_SELLER_COLUMNS)
    return ExecutionResult(
        action=ActionType.SHOW_BEST_SELLERS.value,
        data=products,
        count=len(products),
        message=f"En çok satan {len(products)} ürün listelendi.",
        navigate_to="/products?sort=best_sellers",
    )


async def default_handler(ctx: HandlerContext) -> ExecutionResult:
    return ExecutionResult(
        action=ctx.command.action_type,
        message=f'"{ctx.command.command_text}" komutu yürütüldü.',
        navigate_to=ctx.command.target_page or DEFAULT_NAVIGATE_TO,
    )


ACTION_HANDLERS: Dict[ActionType, Handler] = {
    ActionType.SHOW_DAILY_ORDERS: show_daily_orders,
    ActionType.LIST_OUT_OF_STOCK: list_out_of_stock,
    ActionType.GENERATE_WEEKLY_REPORT: generate_weekly_report,
    ActionType.CHECK_SUPPORT_STATUS: check_support_status,
    ActionType.SHOW_BEST_SELLERS: show_best_sellers,
}


def resolve_handler(action_type: str) -> Handler:
    action = ActionType.parse(action_type)
    if action is None:
        return default_handler
    return ACTION_HANDLERS.get(action, default_handler)


class ActionDispatcher:
    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def execute(self, command: VoiceCommand, tenant_id: int) -> ExecutionResult:
        """Komutun handler'ını çalıştırır. Her türlü handler hatası ExecutionError olarak yükselir."""
        handler = resolve_handler(command.action_type)
        ctx = HandlerContext(db=self.db, command=command, tenant_id=tenant_id, now=self.clock())
        try:
            return await handler(ctx)
        except Exception as exc:
            logger.warning(
                "voice_action.failed",
                command_id=command.id,
                action=command.action_type,
                error=str(exc),
            )
            raise ExecutionError(command, exc) from exc
