from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from .actions import ActionQueue
from .config import SpotSwitchSettings
from .controller import PowerController
from .models import RecomputeOutcome
from .notifier import Notifier, TelegramMessenger
from .providers import AwattarPriceProvider, PriceProvider, StubPriceProvider
from .reconciler import ScheduleReconciler
from .relay import NoOpRelay, Relay, ShellyRelay
from .scheduler import LocalScheduleBackend, ScheduleBackend, ShellyScheduleBackend
from .shelly import ShellyRpcClient
from .storage import FileKeyValueStore, KeyValueStore, ShellyKeyValueStore


@dataclass
class SpotSwitchState:
    settings: SpotSwitchSettings
    price_provider: PriceProvider
    kvs: KeyValueStore
    notifier: Notifier
    controller: PowerController
    actions: ActionQueue
    backend: ScheduleBackend
    reconciler: ScheduleReconciler
    last_outcome: Optional[RecomputeOutcome] = None


def _select_price_provider(settings: SpotSwitchSettings, transport) -> PriceProvider:
    if settings.price_provider == "stub":
        return StubPriceProvider()
    return AwattarPriceProvider(
        country=settings.awattar_country,
        timeout=settings.price_api_timeout_seconds,
        transport=transport,
    )


def _select_relay(settings: SpotSwitchSettings, rpc: ShellyRpcClient | None) -> Relay:
    if settings.relay_backend == "shelly" and rpc is not None:
        return ShellyRelay(rpc=rpc, switch_id=settings.switch_id)
    return NoOpRelay()


def _select_kvs(settings: SpotSwitchSettings, rpc: ShellyRpcClient | None) -> KeyValueStore:
    if rpc is not None:
        return ShellyKeyValueStore(rpc=rpc)
    return FileKeyValueStore(data_dir=settings.data_dir)


def _select_backend(settings: SpotSwitchSettings, rpc: ShellyRpcClient | None) -> ScheduleBackend:
    if settings.scheduler_backend == "shelly" and rpc is not None:
        return ShellyScheduleBackend(rpc=rpc, callback_url=settings.callback_url)
    return LocalScheduleBackend(timezone=settings.timezone)


def build_state(
    settings: SpotSwitchSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SpotSwitchState:
    """Wire all components from one immutable settings object.

    ``transport`` is handed to every outbound HTTP client, which lets tests
    substitute an ``httpx.MockTransport``.
    """
    rpc = None
    if settings.shelly_host:
        rpc = ShellyRpcClient(
            host=settings.shelly_host,
            timeout=settings.shelly_timeout_seconds,
            transport=transport,
        )
    kvs = _select_kvs(settings, rpc)
    messenger = None
    if settings.telegram_active:
        messenger = TelegramMessenger(
            token=str(settings.telegram_token),
            chat_id=str(settings.telegram_chat_id),
            transport=transport,
        )
    notifier = Notifier(settings.device_name, kvs=kvs, messenger=messenger)
    controller = PowerController(
        _select_relay(settings, rpc),
        notifier,
        send_power_on=settings.send_power_on,
        send_power_off=settings.send_power_off,
    )
    backend = _select_backend(settings, rpc)
    return SpotSwitchState(
        settings=settings,
        price_provider=_select_price_provider(settings, transport),
        kvs=kvs,
        notifier=notifier,
        controller=controller,
        actions=ActionQueue(controller, cancel_stale=settings.cancel_stale_actions),
        backend=backend,
        reconciler=ScheduleReconciler(backend, kvs),
    )
