# coinpulse/api/routes.py
import json
import logging
import re
import time
from typing import Any

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from coinpulse.aggregator.timeframe import TIMEFRAME_WINDOWS
from coinpulse.client.models import CoinSummary
from coinpulse.collector.live_channel import SUBSCRIBE, UNSUBSCRIBE
from coinpulse.collector.snapshot_poller import snapshot_payload
from coinpulse.errors import MalformedInput, UpstreamUnavailable
from coinpulse.formatter import format_amount
from coinpulse.service import CoinDataService
from coinpulse.storage.models import EventType, LiveEvent, PriceHistory, RecentActivity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["coins"])

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
NO_STORE_HEADERS = {"Cache-Control": "no-store, no-cache, max-age=0, must-revalidate"}
MAX_DAYS = 365


def envelope(
    data: Any = None,
    status_code: int = 200,
    error: str | None = None,
    message: str | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"success": status_code < 400}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if message is not None:
        body["message"] = message
    return JSONResponse(body, status_code=status_code, headers=NO_STORE_HEADERS)


def error_response(e: Exception) -> JSONResponse:
    if isinstance(e, MalformedInput):
        return envelope(status_code=400, error="Invalid request", message=e.message)
    if isinstance(e, UpstreamUnavailable):
        logger.error(f"Upstream failure: {e}")
        return envelope(status_code=500, error="Upstream unavailable", message=str(e))
    logger.exception(f"Unhandled error: {e}")
    return envelope(status_code=500, error="Internal server error", message=str(e))


def validate_address(address: str) -> str:
    if not ADDRESS_PATTERN.match(address):
        raise MalformedInput(f"Invalid coin address: {address}")
    return address.lower()


def validate_timeframe(timeframe: str) -> str:
    if timeframe not in TIMEFRAME_WINDOWS:
        raise MalformedInput(f"Invalid timeframe: {timeframe}")
    return timeframe


def validate_days(days: str | None) -> int | None:
    if days is None:
        return None
    try:
        value = int(days)
    except ValueError:
        raise MalformedInput(f"Invalid days: {days}") from None
    if not 1 <= value <= MAX_DAYS:
        raise MalformedInput(f"days must be between 1 and {MAX_DAYS}")
    return value


def coin_to_dict(coin: CoinSummary) -> dict[str, Any]:
    return {
        "address": coin.address,
        "name": coin.name,
        "symbol": coin.symbol,
        "marketCap": coin.market_cap,
        "totalSupply": coin.total_supply,
        "marketCapDelta24h": coin.market_cap_delta_24h,
        "volume24h": coin.volume_24h,
        "uniqueHolders": coin.holders,
        "currentPrice": coin.current_price,
        "priceChange24h": coin.price_change_24h,
    }


def history_to_dict(history: PriceHistory, timeframe: str) -> dict[str, Any]:
    return {
        "priceHistory": [p.to_dict() for p in history.points],
        "totalTradesUsed": history.total_trades_used,
        "generatedAt": history.generated_at,
        "timeframe": timeframe,
        "mode": history.mode.value,
        "currentPrice": history.current_price,
    }


def activity_to_dict(activity: RecentActivity) -> dict[str, Any]:
    activities = []
    for record in activity.activities:
        item = record.to_dict()
        item["amountDisplay"] = format_amount(record.amount)
        activities.append(item)
    return {"activities": activities, "source": activity.source.value}


def get_service(request: Request) -> CoinDataService:
    return request.app.state.service


@router.get("/coins/{address}")
async def get_coin(address: str, request: Request) -> JSONResponse:
    try:
        coin_address = validate_address(address)
        coin = await get_service(request).get_coin(coin_address)
    except Exception as e:
        return error_response(e)

    if coin is None:
        return envelope(status_code=404, error="Coin not found", message=f"No coin at {address}")
    return envelope(coin_to_dict(coin))


@router.get("/coins/{address}/price-history")
async def get_price_history(
    address: str, request: Request, timeframe: str = "24h", days: str | None = None
) -> JSONResponse:
    """交易记录优先, 不足时退回快照合成"""
    try:
        coin_address = validate_address(address)
        timeframe = validate_timeframe(timeframe)
        history = await get_service(request).get_price_history(
            coin_address, timeframe, validate_days(days), mode="auto"
        )
    except Exception as e:
        return error_response(e)
    return envelope(history_to_dict(history, timeframe), message=history.message)


@router.get("/coins/{address}/chart")
async def get_chart(address: str, request: Request, timeframe: str = "24h") -> JSONResponse:
    """仅基于市场快照合成的图表"""
    try:
        coin_address = validate_address(address)
        timeframe = validate_timeframe(timeframe)
        history = await get_service(request).get_price_history(coin_address, timeframe, mode="snapshot")
    except Exception as e:
        return error_response(e)
    return envelope(history_to_dict(history, timeframe), message=history.message)


@router.get("/coins/{address}/activity")
async def get_activity(address: str, request: Request) -> JSONResponse:
    try:
        coin_address = validate_address(address)
        activity = await get_service(request).get_recent_activity(coin_address)
    except Exception as e:
        return error_response(e)
    return envelope(activity_to_dict(activity), message=activity.message)


@router.websocket("/live")
async def live(websocket: WebSocket) -> None:
    """
    推送通道

    客户端发送 {"action": "subscribe-coin" | "unsubscribe-coin", "coinAddress": ...},
    订阅成功后立即收到一条 initial 事件, 之后由轮询器推送更新。
    """
    hub = websocket.app.state.hub
    service: CoinDataService = websocket.app.state.service
    await websocket.accept()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            action = message.get("action") if isinstance(message, dict) else None
            coin_address = message.get("coinAddress") if isinstance(message, dict) else None
            if not isinstance(coin_address, str) or not ADDRESS_PATTERN.match(coin_address):
                await websocket.send_json({"type": "error", "message": "Invalid coin address"})
                continue
            coin_address = coin_address.lower()

            if action == SUBSCRIBE:
                hub.join(websocket, coin_address)
                snapshot = await service.get_snapshot(coin_address)
                payload = snapshot_payload(snapshot) if snapshot is not None else {}
                event = LiveEvent(EventType.INITIAL, coin_address, payload, int(time.time() * 1000))
                await hub.send(websocket, event)
            elif action == UNSUBSCRIBE:
                hub.leave(websocket, coin_address)
            else:
                await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        logger.debug("Live client disconnected")
    finally:
        hub.leave_all(websocket)
