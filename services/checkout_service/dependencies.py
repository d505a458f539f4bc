"""Service wiring for the checkout app.

Collaborators are built once, attached to ``app.state.services`` and handed
to routes through FastAPI dependencies.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request

from libs.auth.supabase import SupabaseAuthClient
from libs.common.config import Settings, get_settings
from libs.common.health import HealthProber
from libs.common.network import NetworkMonitor, tcp_probe
from libs.common.resilience import ResilientExecutor, RetryPolicy
from libs.db.session import ping_database
from services.checkout_service.delivery import DeliveryFeeQuoter
from services.checkout_service.paystack_client import PaystackClient
from services.checkout_service.services.payment_gateway import PaymentGatewayAdapter
from services.checkout_service.services.settlement import SettlementOrchestrator


@dataclass
class CheckoutServices:
    network: NetworkMonitor
    health: HealthProber
    executor: ResilientExecutor
    auth_client: SupabaseAuthClient
    gateway: PaymentGatewayAdapter
    quoter: DeliveryFeeQuoter
    orchestrator: SettlementOrchestrator

    def install(self, app: FastAPI) -> None:
        app.state.services = self


def build_services(settings: Optional[Settings] = None) -> CheckoutServices:
    settings = settings or get_settings()

    probe = None
    if settings.CONNECTIVITY_PROBE_ENABLED:
        probe = tcp_probe(settings.CONNECTIVITY_PROBE_HOST, settings.CONNECTIVITY_PROBE_PORT)
    network = NetworkMonitor(probe)

    auth_client = SupabaseAuthClient()
    health = HealthProber(
        {"auth": auth_client.health, "data": ping_database},
        latency_threshold_ms=settings.HEALTH_LATENCY_THRESHOLD_MS,
        retry_delays=settings.REQUEST_RETRY_DELAYS_SECONDS,
        cache_seconds=settings.HEALTH_CACHE_SECONDS,
        network=network,
    )
    executor = ResilientExecutor(
        network,
        health,
        default_policy=RetryPolicy(
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            max_retries=settings.REQUEST_MAX_RETRIES,
            retry_delays=tuple(settings.REQUEST_RETRY_DELAYS_SECONDS),
        ),
    )
    gateway = PaymentGatewayAdapter(
        PaystackClient(), executor, callback_url=settings.PAYSTACK_CALLBACK_URL
    )
    return CheckoutServices(
        network=network,
        health=health,
        executor=executor,
        auth_client=auth_client,
        gateway=gateway,
        quoter=DeliveryFeeQuoter(executor),
        orchestrator=SettlementOrchestrator(executor, gateway),
    )


def get_services(request: Request) -> CheckoutServices:
    return request.app.state.services


def get_executor(request: Request) -> ResilientExecutor:
    return get_services(request).executor


def get_health_prober(request: Request) -> HealthProber:
    return get_services(request).health


def get_auth_client(request: Request) -> SupabaseAuthClient:
    return get_services(request).auth_client


def get_payment_gateway(request: Request) -> PaymentGatewayAdapter:
    return get_services(request).gateway


def get_delivery_quoter(request: Request) -> DeliveryFeeQuoter:
    return get_services(request).quoter


def get_orchestrator(request: Request) -> SettlementOrchestrator:
    return get_services(request).orchestrator
