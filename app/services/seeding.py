"""
Synthetic demo data for local development.

Creates users with wallets and trading wallets, a month of closed trades
per user, copy relationships with their replicated trades, journal
entries, price alerts, watchlists, notification preferences, news and
economic calendar events.

Run with ``python -m app.services.seeding``.
"""
import logging
import random
from datetime import datetime, timedelta, date
from typing import Dict, List

from sqlalchemy.orm import Session

from app.core.database import get_db_session, init_db
from app.models.copy_trading import CopyTradingRelationship, CopyStatus, ApprovalStatus
from app.models.journal import JournalEntry, JournalDirection
from app.models.market import MarketNews, EconomicCalendarEvent
from app.models.notification import PriceAlert, AlertCondition
from app.models.trade import Trade, TradeSide
from app.models.user import User, Follow
from app.models.watchlist import Watchlist
from app.services.copy_trading import copy_trading_service
from app.services.journal_service import derive_outcome, derive_risk_reward
from app.services.market_data import BASE_PRICES, INSTRUMENTS
from app.services.notification_service import notification_service
from app.services.trading_service import trading_service
from app.services.wallet_service import wallet_service
from app.strategies.pricing import trade_profit, pip_size

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("Test User", "test@example.com"),
    ("Alice Carter", "alice@example.com"),
    ("Bruno Silva", "bruno@example.com"),
    ("Chen Wei", "chen@example.com"),
    ("Dana Novak", "dana@example.com"),
]

FOREX_PAIRS = INSTRUMENTS["forex"]

JOURNAL_SETUPS = [
    "Breakout above the Asian session range",
    "Pullback to the 50-period moving average",
    "Double bottom at daily support",
    "Fade of an overextended London open move",
    "Trend continuation after consolidation",
]

JOURNAL_TAGS = ["breakout", "trend", "reversal", "news", "scalp", "swing"]

NEWS_HEADLINES = [
    ("Dollar firms ahead of payrolls", "forex", ["USD", "employment"]),
    ("ECB holds rates, signals patience", "central_banks", ["EUR", "rates"]),
    ("Yen slides as yields climb", "forex", ["JPY", "bonds"]),
    ("Sterling steady after inflation data", "economy", ["GBP", "inflation"]),
    ("Commodity currencies track copper higher", "commodities", ["AUD", "NZD"]),
]

CALENDAR_EVENTS = [
    ("Non-Farm Payrolls", "US", "high"),
    ("CPI y/y", "US", "high"),
    ("ECB Interest Rate Decision", "EU", "high"),
    ("Retail Sales m/m", "GB", "medium"),
    ("Trade Balance", "AU", "low"),
    ("BoJ Policy Rate", "JP", "high"),
]


class DemoDataSeeder:
    """Builds a deterministic demo dataset from a random seed."""

    def __init__(self, seed: int = 42):
        self.rng = random.Random(seed)

    def run(self, db: Session) -> Dict[str, int]:
        users = self.seed_users(db)
        self.seed_follows(db, users)
        relationships = self.seed_relationships(db, users)
        trades = self.seed_trades(db, users)
        copies = self.seed_copied_trades(db, relationships)
        journal = self.seed_journal(db, users)
        alerts = self.seed_price_alerts(db, users)
        watchlist = self.seed_watchlists(db, users)
        news = self.seed_news(db)
        events = self.seed_calendar(db)

        counts = {
            "users": len(users),
            "trades": trades,
            "copied_trades": copies,
            "relationships": len(relationships),
            "journal_entries": journal,
            "price_alerts": alerts,
            "watchlist_items": watchlist,
            "news": news,
            "calendar_events": events,
        }
        logger.info(f"Seeded demo data: {counts}")
        return counts

    def seed_users(self, db: Session) -> List[User]:
        users = []
        for name, email in DEMO_USERS:
            user = db.query(User).filter(User.email == email).first()
            if user is None:
                user = User(name=name, email=email, onboarding_completed=True)
                db.add(user)
                db.flush()
                wallet_service.create_wallet(db, user.id, "USD", initial_balance=10000)
                wallet_service.create_wallet(db, user.id, "EUR", initial_balance=self.rng.choice([0, 2500, 5000]))
                trading_service.create_trading_wallet(db, user.id, "DEMO", initial_balance=10000)
                notification_service.get_preferences(db, user.id)
                copy_trading_service.get_settings(db, user.id)
            users.append(user)
        return users

    def seed_follows(self, db: Session, users: List[User]):
        for follower in users[1:]:
            exists = db.query(Follow).filter(
                Follow.follower_id == follower.id, Follow.following_id == users[0].id
            ).first()
            if exists is None:
                db.add(Follow(follower_id=follower.id, following_id=users[0].id))
        db.flush()

    def seed_relationships(self, db: Session, users: List[User]) -> List[CopyTradingRelationship]:
        """Every other user copies the first user; one relationship is paused."""
        trader = users[0]
        started = datetime.now() - timedelta(days=30)
        relationships = []
        for index, copier in enumerate(users[1:]):
            relationship = db.query(CopyTradingRelationship).filter(
                CopyTradingRelationship.copier_user_id == copier.id,
                CopyTradingRelationship.trader_user_id == trader.id
            ).first()
            if relationship is None:
                relationship = CopyTradingRelationship(
                    copier_user_id=copier.id,
                    trader_user_id=trader.id,
                    status=CopyStatus.PAUSED if index == 3 else CopyStatus.ACTIVE,
                    approval_status=ApprovalStatus.APPROVED,
                    risk_allocation_percentage=self.rng.choice([25, 50, 100]),
                    max_drawdown_percentage=self.rng.choice([None, 20, 30]),
                    copy_fixed_size=index == 2,
                    fixed_lot_size=0.1 if index == 2 else None,
                    copy_stop_loss=True,
                    copy_take_profit=index != 1,
                    started_at=started,
                )
                db.add(relationship)
            relationships.append(relationship)
        db.flush()
        return relationships

    def seed_trades(self, db: Session, users: List[User]) -> int:
        """Between 5 and 20 closed trades per user over the last 30 days."""
        now = datetime.now()
        start = now - timedelta(days=30)
        created = 0
        for user in users:
            for _ in range(self.rng.randint(5, 20)):
                opened_at = start + timedelta(minutes=self.rng.randint(0, 30 * 24 * 60))
                closed_at = min(opened_at + timedelta(minutes=self.rng.randint(30, 24 * 60)), now)

                symbol = self.rng.choice(FOREX_PAIRS)
                side = self.rng.choice(["buy", "sell"])
                entry = BASE_PRICES[symbol]
                delta = entry * self.rng.randint(1, 100) / 10000
                exit_price = round(entry + delta if self.rng.random() < 0.5 else entry - delta, 5)
                lot_size = round(self.rng.randint(1, 200) / 100, 2)

                pip = pip_size(symbol)
                direction = 1 if side == "buy" else -1
                stop_loss = round(entry - direction * self.rng.randint(10, 50) * pip, 5)
                take_profit = round(entry + direction * self.rng.randint(20, 100) * pip, 5)

                db.add(Trade(
                    user_id=user.id,
                    symbol=symbol,
                    type=TradeSide(side),
                    entry_price=entry,
                    exit_price=exit_price,
                    lot_size=lot_size,
                    profit=trade_profit(side, entry, exit_price, lot_size, symbol),
                    stop_loss=stop_loss,
                    take_profit=take_profit,
                    opened_at=opened_at,
                    closed_at=closed_at,
                ))
                created += 1
        db.flush()
        return created

    def seed_copied_trades(self, db: Session, relationships: List[CopyTradingRelationship]) -> int:
        """Replicate the trader's trades opened since each active relationship started."""
        created = 0
        for relationship in relationships:
            if relationship.status != CopyStatus.ACTIVE:
                continue
            started = relationship.started_at.replace(tzinfo=None)
            originals = db.query(Trade).filter(
                Trade.user_id == relationship.trader_user_id,
                Trade.copied_from_trade_id.is_(None)
            ).all()
            for original in originals:
                if original.opened_at.replace(tzinfo=None) < started:
                    continue
                copy_trading_service._copy_for(db, original, relationship)
                created += 1
        return created

    def seed_journal(self, db: Session, users: List[User]) -> int:
        created = 0
        now = datetime.now()
        for user in users:
            for _ in range(self.rng.randint(3, 8)):
                pair = self.rng.choice(FOREX_PAIRS)
                direction = self.rng.choice([JournalDirection.LONG, JournalDirection.SHORT])
                sign = 1 if direction == JournalDirection.LONG else -1
                pip = pip_size(pair)
                entry = BASE_PRICES[pair]
                stop_loss = round(entry - sign * 30 * pip, 5)
                take_profit = round(entry + sign * self.rng.choice([30, 60, 90]) * pip, 5)
                profit_loss = round(self.rng.uniform(-250, 400), 2)
                entry_at = now - timedelta(days=self.rng.randint(1, 30), hours=self.rng.randint(0, 12))

                db.add(JournalEntry(
                    user_id=user.id,
                    pair=pair,
                    direction=direction,
                    entry_price=entry,
                    exit_price=round(entry + sign * profit_loss / 10000, 5),
                    stop_loss=stop_loss,
                    take_profit=take_profit,
                    risk_reward_ratio=derive_risk_reward(entry, stop_loss, take_profit),
                    profit_loss=profit_loss,
                    outcome=derive_outcome(profit_loss),
                    entry_at=entry_at,
                    exit_at=entry_at + timedelta(hours=self.rng.randint(1, 48)),
                    setup_reason=self.rng.choice(JOURNAL_SETUPS),
                    execution_notes="Entered on the candle close, partials at 1R.",
                    tags=self.rng.sample(JOURNAL_TAGS, 2),
                    is_favorite=self.rng.random() < 0.2,
                ))
                created += 1
        db.flush()
        return created

    def seed_price_alerts(self, db: Session, users: List[User]) -> int:
        created = 0
        for user in users:
            for pair in self.rng.sample(FOREX_PAIRS, 2):
                base = BASE_PRICES[pair]
                above = self.rng.random() < 0.5
                db.add(PriceAlert(
                    user_id=user.id,
                    symbol=pair,
                    condition=AlertCondition.ABOVE if above else AlertCondition.BELOW,
                    price=round(base * (1.01 if above else 0.99), 5),
                    is_triggered=False,
                    is_recurring=self.rng.random() < 0.3,
                ))
                created += 1
        db.flush()
        return created

    def seed_watchlists(self, db: Session, users: List[User]) -> int:
        created = 0
        for user in users:
            for symbol in self.rng.sample(FOREX_PAIRS, 4):
                exists = db.query(Watchlist).filter(
                    Watchlist.user_id == user.id, Watchlist.symbol == symbol
                ).first()
                if exists is None:
                    db.add(Watchlist(user_id=user.id, symbol=symbol))
                    created += 1
        db.flush()
        return created

    def seed_news(self, db: Session) -> int:
        created = 0
        now = datetime.now()
        for index, (headline, category, topics) in enumerate(NEWS_HEADLINES):
            url = f"https://news.example.com/fx/{index + 1}"
            if db.get(MarketNews, url) is not None:
                continue
            db.add(MarketNews(
                url=url,
                headline=headline,
                summary=f"{headline}. Traders weigh the outlook for the week ahead.",
                published_at=now - timedelta(hours=index * 6),
                source=self.rng.choice(["Reuters", "Bloomberg", "FXStreet"]),
                category=category,
                topics=topics,
                sentiment=round(self.rng.uniform(-1, 1), 4),
            ))
            created += 1
        db.flush()
        return created

    def seed_calendar(self, db: Session) -> int:
        created = 0
        today = date.today()
        for index, (title, country, impact) in enumerate(CALENDAR_EVENTS):
            event_id = f"{country}-{index + 1}-{today.isoformat()}"
            if db.get(EconomicCalendarEvent, event_id) is not None:
                continue
            db.add(EconomicCalendarEvent(
                event_id=event_id,
                title=title,
                country=country,
                event_date=today + timedelta(days=index),
                event_time=f"{8 + index:02d}:30",
                impact=impact,
                forecast=f"{self.rng.uniform(0, 5):.1f}%",
                previous=f"{self.rng.uniform(0, 5):.1f}%",
            ))
            created += 1
        db.flush()
        return created


def seed_demo_data(seed: int = 42) -> Dict[str, int]:
    init_db()
    with get_db_session() as db:
        return DemoDataSeeder(seed).run(db)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print(seed_demo_data())
