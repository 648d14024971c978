import logging
from typing import List

import asyncio
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
import click

from market_feed import MarketFeed, CoinbaseMarketFeed
from tick_scheduler import SlippageMonitor, TRADE_VOLUME, TICK_PERIOD, REPORT_PRECISION
from util import configure_logging, logger

DEFAULT_PRODUCT = "BTC-USD"
MAX_BACKOFF = 60


async def monitor_market_feed(exchangefeed: MarketFeed, max_messages=-1) -> int:
    MAX_MSG_SIZE = 32 * 10 ** 6  # 32 MB
    url = exchangefeed.API_URL

    socketlogger = logging.getLogger("websockets")
    socketlogger.setLevel(logging.INFO)

    code = 0
    async with websockets.connect(url, logger=socketlogger, max_size=MAX_MSG_SIZE,
                                  user_agent_header=None) as ws:
        await exchangefeed.subscribe_to_feed(ws)

        count = 0
        async for raw_msg in ws:
            count += 1
            logger.debug(f"<<< ({count}) {raw_msg[:125]}")
            try:
                code = exchangefeed.process_message(raw_msg)
            except Exception as err:
                logger.exception(f"failed to process message ({err!r}): {raw_msg[:125]}")
                code = 0
            if code != 0 or count == max_messages:
                await exchangefeed.unsubscribe_to_feed(ws)
                await ws.close(1000)
                break

    return code


async def run_feed_forever(exchangefeed: MarketFeed, max_backoff=MAX_BACKOFF):
    # the books keep their last state while disconnected, the snapshot sent
    # after resubscribing replaces them
    backoff = 1
    while True:
        snapshots = exchangefeed.snapshots
        try:
            code = await monitor_market_feed(exchangefeed)
            logger.warning(f"feed stopped with code {code}, reconnecting in {backoff}s")
        except ConnectionClosed as err:
            logger.warning(f"connection closed: {err}, reconnecting in {backoff}s")
        except WebSocketException as err:
            logger.error(f"websocket error: {err!r}, reconnecting in {backoff}s")
        except (OSError, asyncio.TimeoutError) as err:
            logger.error(f"connection failed: {err!r}, reconnecting in {backoff}s")
        if exchangefeed.snapshots > snapshots:
            backoff = 1
        await asyncio.sleep(backoff)
        backoff = min(backoff * 2, max_backoff)


async def main_async(monitor: SlippageMonitor, exchangefeed: MarketFeed):
    tasks: List[asyncio.Task] = [asyncio.create_task(run_feed_forever(exchangefeed))]
    for scheduler in monitor.schedulers():
        tasks.append(asyncio.create_task(scheduler.run()))

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        pass
    finally:
        for task in tasks:
            task.cancel()


@click.command(context_settings={"auto_envvar_prefix": "SLIPPAGE"})
@click.option("--product", default=DEFAULT_PRODUCT, show_default=True,
              help="coinbase product to monitor (eg. ETH-USD)")
@click.option("--volume", default=TRADE_VOLUME, type=click.FloatRange(min=0, min_open=True), show_default=True,
              help="trade volume priced against each side of the book")
@click.option("--interval", default=TICK_PERIOD, type=click.FloatRange(min=0, min_open=True), show_default=True,
              help="seconds between slippage measurements")
@click.option("--precision", default=REPORT_PRECISION, type=click.IntRange(min=0), show_default=True,
              help="fractional digits in the slippage report")
@click.option("--url", default=CoinbaseMarketFeed.SOCKET_API_URL, show_default=True,
              help="websocket feed url")
@click.option("--channel", default=CoinbaseMarketFeed.CHANNEL, show_default=True,
              help="level 2 channel to subscribe to")
@click.option("--log-dir", default="logs", show_default=True,
              help="directory for the log files")
@click.option("--verbose", is_flag=True, default=False,
              help="log every feed message and tick timing")
def start_event_loop(product, volume, interval, precision, url, channel, log_dir, verbose):
    configure_logging(directory=log_dir, verbose=verbose)

    monitor = SlippageMonitor(volume=volume, period=interval, precision=precision)
    exchangefeed = CoinbaseMarketFeed(monitor, product_id=product, channel=channel, url=url)
    logger.info(f"monitoring {product} slippage for {volume} units every {interval}s")

    try:
        asyncio.run(main_async(monitor, exchangefeed))
    except KeyboardInterrupt:
        logger.info("stopped")


if __name__ == "__main__":
    start_event_loop()
