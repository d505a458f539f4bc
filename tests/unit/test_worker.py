"""Unit tests for the ARQ worker wiring."""

import pytest
from libs.common.arq_config import get_redis_settings
from services.checkout_service import tasks, worker


@pytest.mark.unit
def test_redis_settings_come_from_url(monkeypatch):
    from libs.common.config import get_settings

    monkeypatch.setenv("REDIS_URL", "redis://cache.internal:6380/2")
    get_settings.cache_clear()
    try:
        settings = get_redis_settings()
    finally:
        monkeypatch.undo()
        get_settings.cache_clear()

    assert settings.host == "cache.internal"
    assert settings.port == 6380
    assert settings.database == 2


@pytest.mark.unit
def test_cron_schedule():
    names = {job.name for job in worker.WorkerSettings.cron_jobs}

    assert names == {
        "cron:task_reconcile_pending_payments",
        "cron:task_expire_stale_orders",
    }
    assert worker.WorkerSettings.on_startup is worker.startup


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reconcile_task_uses_worker_gateway(monkeypatch, checkout_services):
    seen = {}

    async def fake_reconcile(gateway, **kwargs):
        seen["gateway"] = gateway
        return 0

    monkeypatch.setattr(tasks, "reconcile_pending_payments", fake_reconcile)

    await worker.task_reconcile_pending_payments({"services": checkout_services})

    assert seen["gateway"] is checkout_services.gateway


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expire_task_runs_sweep(monkeypatch):
    calls = []

    async def fake_expire(**kwargs):
        calls.append(kwargs)
        return 0

    monkeypatch.setattr(tasks, "expire_stale_orders", fake_expire)

    await worker.task_expire_stale_orders({})

    assert calls == [{}]
