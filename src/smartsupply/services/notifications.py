"""Bildirim merkezi - düşük stok uyarıları ve sipariş güncellemeleri.

Çekirdek yalnızca mesajı oluşturur ve abonelerin handler'larına iletir;
gerçek teslimat (e-posta, SMS vb.) harici bir işbirlikçinin işidir.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional

from smartsupply.models.order import Order
from smartsupply.models.supply import Capability, Party, StockPosition, utcnow

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    LOW_STOCK_ALERT = "low_stock_alert"
    ORDER_UPDATE = "order_update"
    SYSTEM = "system"
    ERROR = "error"


@dataclass
class Notification:
    message_id: str
    sender: str
    receiver: str
    message_type: MessageType
    payload: dict
    timestamp: datetime = field(default_factory=utcnow)
    correlation_id: Optional[str] = None


Handler = Callable[[Notification], None]


class NotificationCenter:
    """Taraf aboneliklerini ve mesaj günlüğünü yönetir."""

    SENDER = "smartsupply-core"

    def __init__(self) -> None:
        self._subscribers: dict[str, Party] = {}
        self._handlers: dict[str, list[Handler]] = {}
        self._message_log: list[Notification] = []
        self._lock = threading.Lock()

    def subscribe(self, party: Party, handler: Handler) -> None:
        with self._lock:
            self._subscribers[party.party_id] = party
            self._handlers.setdefault(party.party_id, []).append(handler)
        logger.info("Bildirim aboneliği: %s (%s)", party.party_id, party.role.value)

    def unsubscribe(self, party_id: str) -> None:
        with self._lock:
            self._subscribers.pop(party_id, None)
            self._handlers.pop(party_id, None)

    def subscribers(self) -> list[Party]:
        with self._lock:
            return list(self._subscribers.values())

    # --- Yayınlama ---

    def publish_low_stock(
        self, location_id: str, positions: dict[str, StockPosition]
    ) -> list[Notification]:
        """Düşük stok uyarısını lokasyonla ilgili ve yetkili taraflara gönderir."""
        if not positions:
            return []
        payload = {
            "location_id": location_id,
            "products": [
                {"product_id": pid, "stock": pos.stock, "threshold": pos.threshold}
                for pid, pos in sorted(positions.items())
            ],
        }
        receivers = [
            p for p in self.subscribers()
            if p.can(Capability.RECEIVE_LOW_STOCK_ALERTS)
            and (p.location_id is None or p.location_id == location_id)
        ]
        return self._send_all(receivers, MessageType.LOW_STOCK_ALERT, payload)

    def publish_order_update(self, order: Order, message: str = "") -> list[Notification]:
        """Sipariş durum değişikliğini siparişin taraflarına bildirir."""
        payload = {
            "order_id": order.order_id,
            "status": order.status.value,
            "description": order.status.description,
            "message": message,
        }
        party_ids = {order.placed_by_party_id, order.fulfilling_party_id}
        receivers = [p for p in self.subscribers() if p.party_id in party_ids]
        return self._send_all(receivers, MessageType.ORDER_UPDATE, payload)

    def send_system_notification(self, subject: str, message: str) -> list[Notification]:
        payload = {"subject": subject, "message": message}
        return self._send_all(self.subscribers(), MessageType.SYSTEM, payload)

    # --- Günlük ---

    def get_message_log(self) -> list[Notification]:
        with self._lock:
            return list(self._message_log)

    def get_party_messages(self, party_id: str) -> list[Notification]:
        return [m for m in self.get_message_log() if m.receiver == party_id]

    # --- Yardımcılar ---

    def _send_all(
        self, receivers: Iterable[Party], message_type: MessageType, payload: dict
    ) -> list[Notification]:
        sent = []
        for party in receivers:
            notification = Notification(
                message_id=str(uuid.uuid4()),
                sender=self.SENDER,
                receiver=party.party_id,
                message_type=message_type,
                payload=dict(payload),
            )
            self._deliver(notification)
            sent.append(notification)
        return sent

    def _deliver(self, notification: Notification) -> None:
        with self._lock:
            self._message_log.append(notification)
            handlers = list(self._handlers.get(notification.receiver, []))

        for handler in handlers:
            try:
                handler(notification)
            except Exception as e:
                # Teslimat hatası çekirdek işlemi geri almaz; hata mesajı olarak kaydedilir
                logger.error("Bildirim teslim hatası [%s]: %s", notification.receiver, e)
                error_msg = Notification(
                    message_id=str(uuid.uuid4()),
                    sender=notification.receiver,
                    receiver=self.SENDER,
                    message_type=MessageType.ERROR,
                    payload={"error_type": type(e).__name__, "error_message": str(e)},
                    correlation_id=notification.message_id,
                )
                with self._lock:
                    self._message_log.append(error_msg)
