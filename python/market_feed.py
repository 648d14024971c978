import abc
import json
import logging
from typing import Any, Dict, List, Optional

from tick_scheduler import SlippageMonitor
from util import tojson, fromjson

STOP_CODE = 1000


class MarketFeed(abc.ABC):
    def __init__(self, monitor: SlippageMonitor) -> None:
        self.monitor = monitor
        self.snapshots = 0

        self.logger: logging.Logger = logging.getLogger("feed")

    @abc.abstractmethod
    async def subscribe_to_feed(self, ws):
        pass

    @abc.abstractmethod
    async def unsubscribe_to_feed(self, ws):
        pass

    @abc.abstractmethod
    def process_message(self, raw_msg: str) -> int:
        pass

    @property
    @abc.abstractmethod
    def API_URL(self) -> str:
        pass


class CoinbaseMarketFeed(MarketFeed):
    SOCKET_API_URL = "wss://ws-feed.exchange.coinbase.com"
    CHANNEL = "level2_batch"
    NAME = "Coinbase"

    def __init__(self, monitor: SlippageMonitor, product_id: str, channel: str = CHANNEL,
                 url: Optional[str] = None) -> None:
        super().__init__(monitor)

        self.product_id = product_id
        self.channel = channel
        self.products = [product_id]
        self.url = url or CoinbaseMarketFeed.SOCKET_API_URL

        self.updates = 0

    @property
    def API_URL(self):
        return self.url

    @staticmethod
    def generate_subscribe_message(products, channel) -> Dict[str, Any]:
        return {
            "type": "subscribe",
            "product_ids": list(products),
            "channels": [channel],
        }

    @staticmethod
    def generate_unsubscribe_message(products, channel) -> Dict[str, Any]:
        return {
            "type": "unsubscribe",
            "product_ids": list(products),
            "channels": [channel],
        }

    async def subscribe_to_feed(self, ws):
        sub_msg_str = tojson(CoinbaseMarketFeed.generate_subscribe_message(self.products, self.channel))
        await ws.send(sub_msg_str)
        self.logger.info(f">>> {sub_msg_str}")

    async def unsubscribe_to_feed(self, ws):
        unsub_msg_str = tojson(CoinbaseMarketFeed.generate_unsubscribe_message(self.products, self.channel))
        await ws.send(unsub_msg_str)
        self.logger.info(f">>> {unsub_msg_str}")

    def _for_product(self, msg: dict) -> bool:
        product_id = msg.get("product_id")
        if product_id != self.product_id:
            self.logger.info(f"ignoring {msg.get('type')} for {product_id}")
            return False
        return True

    def process_snapshot(self, msg: dict):
        if not self._for_product(msg):
            return
        asks: List[list] = msg.get("asks") or []
        bids: List[list] = msg.get("bids") or []
        if not isinstance(asks, list) or not isinstance(bids, list):
            self.logger.error(f"ignoring snapshot with malformed levels: {msg!r:.125}")
            return

        self.logger.info(f"processing snapshot with {len(asks)} asks and {len(bids)} bids")
        self.snapshots += 1
        self.monitor.on_snapshot(asks, bids)

    def process_update(self, msg: dict):
        if not self._for_product(msg):
            return
        changes: List[list] = msg.get("changes") or []
        if not isinstance(changes, list):
            self.logger.error(f"ignoring l2update with malformed changes: {msg!r:.125}")
            return

        self.logger.debug(f"queueing {len(changes)} changes")
        self.updates += 1
        self.monitor.on_changes(changes)

    def process_message(self, raw_msg: str) -> int:
        try:
            msg = fromjson(raw_msg)
        except json.JSONDecodeError as err:
            self.logger.error(f"ignoring undecodable message ({err}): {raw_msg[:125]}")
            return 0
        if not isinstance(msg, dict):
            self.logger.error(f"ignoring unexpected message: {raw_msg[:125]}")
            return 0

        msg_type = msg.get("type", None)
        if msg_type == "error":
            self.logger.error(f"Error: {raw_msg}")
            return STOP_CODE

        if msg_type == "snapshot":
            self.process_snapshot(msg)
        elif msg_type == "l2update":
            self.process_update(msg)
        elif msg_type == "subscriptions":
            self.logger.info(f"received subscriptions {msg.get('channels')}")
        else:
            self.logger.info(f"ignoring message of type {msg_type}")
        return 0
