"""ARQ worker for payment reconciliation and stale-order expiry."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def startup(ctx: dict):
    from services.checkout_service.dependencies import build_services

    configure_logging()
    ctx["services"] = build_services()


async def task_reconcile_pending_payments(ctx: dict):
    from services.checkout_service.tasks import reconcile_pending_payments

    logger.info("Running: reconcile_pending_payments")
    await reconcile_pending_payments(ctx["services"].gateway)


async def task_expire_stale_orders(ctx: dict):
    from services.checkout_service.tasks import expire_stale_orders

    logger.info("Running: expire_stale_orders")
    await expire_stale_orders()


class WorkerSettings:
    redis_settings = get_redis_settings()

    on_startup = startup

    functions = [
        task_reconcile_pending_payments,
        task_expire_stale_orders,
    ]

    cron_jobs = [
        cron(
            task_reconcile_pending_payments,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
            run_at_startup=True,
        ),
        cron(
            task_expire_stale_orders,
            minute={2, 17, 32, 47},
        ),
    ]
