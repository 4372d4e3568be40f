"""
Trading service for market orders, open positions and margin monitoring.

Orders fill immediately at the current quote. Margin is reserved from the
trading wallet when one is given, otherwise from the user's account, and
released when the position closes.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy.orm import Session

from app.core.cache import redis_cache
from app.core.config import settings
from app.core.exceptions import (
    InsufficientMarginError, InvalidStateError, NotFoundError, ValidationError
)
from app.models.trading import (
    TradingOrder, TradingPosition, OrderSide, OrderType, OrderStatus, PositionStatus
)
from app.models.trading_wallet import TradingWallet, TradingWalletType, MarginStatus
from app.services.market_data import market_data_service
from app.services.notification_service import notification_service
from app.services.wallet_service import wallet_service, parse_uuid
from app.strategies.pricing import normalize_pair, required_margin

logger = logging.getLogger(__name__)

# Reasons that leave a position STOPPED rather than CLOSED
STOPPED_REASONS = ("stop_loss", "stop_out")


class TradingService:
    """Service for order execution and position management."""

    def __init__(self, market_data=None, notifications=None, wallets=None):
        self.market_data = market_data or market_data_service
        self.notifications = notifications or notification_service
        self.wallets = wallets or wallet_service

    # Market data passthroughs

    def get_instruments(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.market_data.get_instruments()

    def get_quote(self, pair: str) -> Dict[str, Any]:
        self._require_supported(pair)
        return self.market_data.get_quote(pair)

    def get_chart_data(self, pair: str, timeframe: str = "1d", limit: int = 30) -> List[Dict[str, Any]]:
        self._require_supported(pair)
        return self.market_data.get_chart_data(pair, timeframe, limit)

    # Trading wallets

    def create_trading_wallet(self, db: Session, user_id: int, wallet_type: str = "DEMO",
                              initial_balance: float = 0, leverage: int = None) -> TradingWallet:
        """Open a DEMO or LIVE trading wallet; one of each type per user."""
        self.wallets.get_user(db, user_id)
        try:
            kind = TradingWalletType(wallet_type.upper())
        except ValueError:
            raise ValidationError("Wallet type must be DEMO or LIVE.")
        if initial_balance < 0:
            raise ValidationError("Initial balance cannot be negative.")

        existing = db.query(TradingWallet).filter(
            TradingWallet.user_id == user_id,
            TradingWallet.wallet_type == kind
        ).first()
        if existing:
            raise InvalidStateError(f"A {kind.value} trading wallet already exists.")

        trading_wallet = TradingWallet(
            id=uuid.uuid4(),
            user_id=user_id,
            wallet_type=kind,
            balance=initial_balance,
            equity=initial_balance,
            available_margin=initial_balance,
            used_margin=0,
            leverage=leverage or settings.trading_wallet_leverage,
            margin_call_level=settings.margin_call_level,
            margin_stop_out_level=settings.margin_stop_out_level,
            is_active=True,
        )
        db.add(trading_wallet)
        db.flush()
        logger.info(f"Created {kind.value} trading wallet {trading_wallet.id} for user {user_id}")
        return trading_wallet

    def get_trading_wallet(self, db: Session, user_id: int, wallet_id) -> TradingWallet:
        trading_wallet = db.get(TradingWallet, parse_uuid(wallet_id, "Trading wallet"))
        if trading_wallet is None or trading_wallet.user_id != user_id:
            raise NotFoundError("Trading wallet", wallet_id)
        return trading_wallet

    def list_trading_wallets(self, db: Session, user_id: int) -> List[TradingWallet]:
        return db.query(TradingWallet).filter(TradingWallet.user_id == user_id).all()

    def refresh_trading_wallet(self, db: Session, trading_wallet: TradingWallet,
                               prices: Dict[str, float] = None) -> TradingWallet:
        """Recompute equity, used margin and free margin from open positions."""
        prices = prices if prices is not None else {}
        unrealized = 0.0
        used = 0.0
        for position in self._open_positions_of(db, trading_wallet):
            if position.currency_pair not in prices:
                prices[position.currency_pair] = self.market_data.get_current_price(position.currency_pair)
            unrealized += position.unrealized_pnl(prices[position.currency_pair])
            used += float(position.margin or 0)

        equity = float(trading_wallet.balance or 0) + unrealized
        trading_wallet.equity = round(equity, 2)
        trading_wallet.used_margin = round(used, 2)
        trading_wallet.available_margin = round(equity - used, 2)
        db.flush()
        return trading_wallet

    # Orders and positions

    def place_market_order(self, db: Session, user_id: int, currency_pair: str, side: str, quantity: float,
                           stop_loss: float = None, take_profit: float = None,
                           trading_wallet_id=None) -> Dict[str, Any]:
        """
        Fill a market order at the current price and open a position.

        Args:
            quantity: position size in units of the base currency
            trading_wallet_id: reserve margin from this trading wallet instead of the account

        Returns:
            Dict with the order, the position and the margin reserved
        """
        user = self.wallets.get_user(db, user_id)
        pair = self._require_supported(currency_pair)
        try:
            order_side = OrderSide(side.upper())
        except ValueError:
            raise ValidationError("Side must be BUY or SELL.")
        if quantity is None or quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")

        trading_wallet = None
        if trading_wallet_id is not None:
            trading_wallet = self.get_trading_wallet(db, user_id, trading_wallet_id)
            if not trading_wallet.is_active:
                raise InvalidStateError("Trading wallet is not active.")

        price = self.market_data.get_current_price(pair)
        if trading_wallet is not None:
            leverage = trading_wallet.leverage
            available = float(trading_wallet.available_margin or 0)
        else:
            leverage = user.leverage
            available = float(user.available_margin or 0)

        margin = round(required_margin(quantity, price, leverage), 2)
        if available < margin:
            raise InsufficientMarginError(required=margin, available=available)

        order = TradingOrder(
            id=uuid.uuid4(),
            user_id=user_id,
            trading_wallet_id=trading_wallet.id if trading_wallet else None,
            currency_pair=pair,
            order_type=OrderType.MARKET,
            side=order_side,
            quantity=quantity,
            price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            time_in_force="GTC",
            status=OrderStatus.FILLED,
        )
        position = TradingPosition(
            id=uuid.uuid4(),
            user_id=user_id,
            trading_wallet_id=trading_wallet.id if trading_wallet else None,
            currency_pair=pair,
            trade_type=order_side,
            entry_price=price,
            current_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            quantity=quantity,
            margin=margin,
            status=PositionStatus.OPEN,
            entry_time=datetime.now(),
        )
        db.add(order)
        db.add(position)
        db.flush()

        if trading_wallet is not None:
            self.refresh_trading_wallet(db, trading_wallet, {pair: price})
        else:
            user.available_margin = available - margin
            db.flush()

        self.notifications.notify(db, user_id, "trade_executed", {
            "title": "Trade executed",
            "message": f"{order_side.value} {quantity:g} {pair} at {price}",
            "position_id": str(position.id),
            "currency_pair": pair,
            "side": order_side.value,
            "quantity": quantity,
            "price": price,
        })

        logger.info(f"Market {order_side.value} {quantity} {pair} filled at {price} for user {user_id}")
        return {
            "success": True,
            "order": order,
            "position": position,
            "margin_required": margin,
            "message": "Market order executed successfully.",
        }

    def close_position(self, db: Session, user_id: int, position_id, reason: str = "manual",
                       exit_price: float = None) -> Dict[str, Any]:
        """
        Close an open position at the current (or given) price.

        Realized P&L goes to the trading wallet, or else to the account
        balance and the default wallet; the reserved margin is released.
        """
        position = self.get_position(db, user_id, position_id)
        if position.status != PositionStatus.OPEN:
            raise InvalidStateError("Position is already closed.")

        price = exit_price if exit_price is not None else self.market_data.get_current_price(position.currency_pair)
        pnl = round(self.market_data.calculate_profit_loss(
            position.trade_type.value, float(position.entry_price), price, float(position.quantity)
        ), 2)
        margin = float(position.margin or 0)

        position.current_price = price
        position.exit_price = price
        position.exit_time = datetime.now()
        position.profit_loss = pnl
        position.close_reason = reason
        position.status = PositionStatus.STOPPED if reason in STOPPED_REASONS else PositionStatus.CLOSED
        db.flush()

        trading_wallet = position.trading_wallet
        if trading_wallet is not None:
            trading_wallet.balance = float(trading_wallet.balance or 0) + pnl
            self.refresh_trading_wallet(db, trading_wallet)
        else:
            user = self.wallets.get_user(db, user_id)
            user.available_margin = float(user.available_margin or 0) + margin
            user.account_balance = float(user.account_balance or 0) + pnl
            wallet = self.wallets.get_default_wallet(db, user_id)
            if wallet is not None:
                self.wallets.settle_trade(
                    db, wallet, pnl, f"Closed {position.currency_pair} position",
                    {"position_id": str(position.id), "close_reason": reason},
                )
            db.flush()

        self.notifications.notify_trade_closed(db, user_id, {
            "position_id": str(position.id),
            "currency_pair": position.currency_pair,
            "trade_type": position.trade_type.value,
            "entry_price": float(position.entry_price),
            "exit_price": price,
            "profit_loss": pnl,
        }, close_reason=reason)

        logger.info(f"Closed position {position.id} ({reason}) at {price} with P&L {pnl}")
        return {
            "success": True,
            "position": position,
            "profit_loss": pnl,
            "message": "Position closed successfully.",
        }

    def get_position(self, db: Session, user_id: int, position_id) -> TradingPosition:
        position = db.get(TradingPosition, parse_uuid(position_id, "Position"))
        if position is None or position.user_id != user_id:
            raise NotFoundError("Position", position_id)
        return position

    def get_positions(self, db: Session, user_id: int, status: str = None) -> List[TradingPosition]:
        query = db.query(TradingPosition).filter(TradingPosition.user_id == user_id)
        if status:
            try:
                query = query.filter(TradingPosition.status == PositionStatus(status.upper()))
            except ValueError:
                raise ValidationError(f"Unknown position status: {status}")
        return query.order_by(TradingPosition.entry_time.desc()).all()

    def get_orders(self, db: Session, user_id: int, limit: int = 50) -> List[TradingOrder]:
        return db.query(TradingOrder).filter(
            TradingOrder.user_id == user_id
        ).order_by(TradingOrder.created_at.desc()).limit(limit).all()

    def check_stop_loss_take_profit(self, position: TradingPosition, current_price: float = None) -> Optional[str]:
        """Return 'stop_loss' or 'take_profit' when the position's level is hit."""
        if position.status != PositionStatus.OPEN:
            return None
        price = current_price if current_price is not None else self.market_data.get_current_price(position.currency_pair)
        if position.check_stop_loss_hit(price):
            return "stop_loss"
        if position.check_take_profit_hit(price):
            return "take_profit"
        return None

    # Monitoring

    def monitor_open_positions(self, db: Session) -> Dict[str, Any]:
        """
        Update open positions with current prices and enforce SL/TP and margin.

        Returns:
            Counts of positions checked and closed, and margin actions taken
        """
        prices: Dict[str, float] = {}
        results = {
            "checked": 0,
            "stop_loss": 0,
            "take_profit": 0,
            "stop_out": 0,
            "margin_calls": 0,
            "timestamp": datetime.now().isoformat(),
        }

        positions = db.query(TradingPosition).filter(TradingPosition.status == PositionStatus.OPEN).all()
        for position in positions:
            try:
                if position.currency_pair not in prices:
                    prices[position.currency_pair] = self.market_data.get_current_price(position.currency_pair)
                price = prices[position.currency_pair]
                position.current_price = price
                results["checked"] += 1

                hit = self.check_stop_loss_take_profit(position, price)
                if hit:
                    with db.begin_nested():
                        self.close_position(db, position.user_id, position.id, reason=hit, exit_price=price)
                    results[hit] += 1
            except Exception as e:
                logger.error(f"Failed to monitor position {position.id}: {e}")
        db.flush()

        wallets = db.query(TradingWallet).filter(TradingWallet.is_active.is_(True)).all()
        for trading_wallet in wallets:
            try:
                with db.begin_nested():
                    status = self.enforce_margin(db, trading_wallet, prices)
                if status == MarginStatus.MARGIN_CALL:
                    results["margin_calls"] += 1
                elif status == MarginStatus.STOP_OUT:
                    results["stop_out"] += 1
            except Exception as e:
                logger.error(f"Failed to check margin for trading wallet {trading_wallet.id}: {e}")

        return results

    def enforce_margin(self, db: Session, trading_wallet: TradingWallet,
                       prices: Dict[str, float] = None) -> MarginStatus:
        """
        Refresh a trading wallet and act on its margin status.

        At stop-out the most losing positions are closed one by one until
        the margin level recovers; a margin call only notifies the owner.
        """
        prices = prices if prices is not None else {}
        self.refresh_trading_wallet(db, trading_wallet, prices)
        status = trading_wallet.margin_status

        if status == MarginStatus.STOP_OUT:
            while trading_wallet.margin_status == MarginStatus.STOP_OUT:
                positions = self._open_positions_of(db, trading_wallet)
                if not positions:
                    break
                worst = min(positions, key=lambda p: p.unrealized_pnl(prices.get(p.currency_pair)))
                price = prices.get(worst.currency_pair)
                self.close_position(db, trading_wallet.user_id, worst.id, reason="stop_out", exit_price=price)
                logger.warning(f"Stop-out closed position {worst.id} in trading wallet {trading_wallet.id}")
            self.notifications.notify(db, trading_wallet.user_id, "stop_out", {
                "title": "Stop out",
                "message": "Positions were closed because your margin level fell below the stop-out level.",
                "trading_wallet_id": str(trading_wallet.id),
                "margin_level": trading_wallet.margin_level,
            })
        elif status == MarginStatus.MARGIN_CALL:
            cache_key = f"margin_call:{trading_wallet.id}"
            if not redis_cache.exists(cache_key):
                self.notifications.notify(db, trading_wallet.user_id, "margin_call", {
                    "title": "Margin call",
                    "message": f"Your margin level is {trading_wallet.margin_level:.2f}%. Add funds or reduce exposure.",
                    "trading_wallet_id": str(trading_wallet.id),
                    "margin_level": trading_wallet.margin_level,
                })
                redis_cache.set(cache_key, True, expiration=3600)
        return status

    def _open_positions_of(self, db: Session, trading_wallet: TradingWallet) -> List[TradingPosition]:
        return db.query(TradingPosition).filter(
            TradingPosition.trading_wallet_id == trading_wallet.id,
            TradingPosition.status == PositionStatus.OPEN
        ).all()

    def _require_supported(self, pair: str) -> str:
        symbol = normalize_pair(pair)
        if not self.market_data.is_supported(symbol):
            raise ValidationError(f"Unsupported currency pair: {pair}")
        return symbol


# Global trading service instance
trading_service = TradingService()
