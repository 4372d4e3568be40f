"""
Trading journal service.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.journal import JournalEntry, JournalDirection, JournalOutcome
from app.strategies.pricing import normalize_pair

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("entry_price", "exit_price", "stop_loss", "take_profit")
TEXT_FIELDS = ("setup_reason", "execution_notes", "post_trade_analysis")
MAX_TAG_LENGTH = 50


def derive_risk_reward(entry_price: Optional[float], stop_loss: Optional[float],
                       take_profit: Optional[float]) -> Optional[float]:
    """Reward distance over risk distance, when both levels are set."""
    if entry_price is None or stop_loss is None or take_profit is None:
        return None
    risk = abs(entry_price - stop_loss)
    if risk == 0:
        return None
    return round(abs(take_profit - entry_price) / risk, 2)


def derive_outcome(profit_loss: Optional[float]) -> Optional[JournalOutcome]:
    if profit_loss is None:
        return None
    if profit_loss > 0:
        return JournalOutcome.WIN
    if profit_loss < 0:
        return JournalOutcome.LOSS
    return JournalOutcome.BREAKEVEN


class JournalService:
    """Service for journal entries and journal statistics."""

    def create_entry(self, db: Session, user_id: int, data: Dict[str, Any]) -> JournalEntry:
        values = self._validated(data, partial=False)
        entry = JournalEntry(user_id=user_id, is_favorite=False)
        self._apply(entry, values)
        db.add(entry)
        db.flush()
        logger.info(f"Journal entry {entry.id} created for user {user_id}")
        return entry

    def get_entry(self, db: Session, user_id: int, entry_id: int) -> JournalEntry:
        entry = db.get(JournalEntry, entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError("Journal entry", entry_id)
        return entry

    def update_entry(self, db: Session, user_id: int, entry_id: int, data: Dict[str, Any]) -> JournalEntry:
        entry = self.get_entry(db, user_id, entry_id)
        values = self._validated(data, partial=True)

        entry_at = values.get("entry_at", entry.entry_at)
        exit_at = values.get("exit_at", entry.exit_at)
        if entry_at and exit_at and _naive(exit_at) < _naive(entry_at):
            raise ValidationError("Exit time must be on or after the entry time.")

        self._apply(entry, values)
        db.flush()
        return entry

    def delete_entry(self, db: Session, user_id: int, entry_id: int) -> None:
        entry = self.get_entry(db, user_id, entry_id)
        db.delete(entry)
        db.flush()

    def toggle_favorite(self, db: Session, user_id: int, entry_id: int) -> JournalEntry:
        entry = self.get_entry(db, user_id, entry_id)
        entry.is_favorite = not entry.is_favorite
        db.flush()
        return entry

    def list_entries(self, db: Session, user_id: int, pair: str = None, outcome: str = None,
                     tag: str = None, favorites_only: bool = False, date_from: datetime = None,
                     date_to: datetime = None, search: str = None,
                     limit: int = 50, offset: int = 0) -> List[JournalEntry]:
        """Entries newest first, with optional filters."""
        query = db.query(JournalEntry).filter(JournalEntry.user_id == user_id)
        if pair:
            query = query.filter(JournalEntry.pair == normalize_pair(pair))
        if outcome:
            try:
                query = query.filter(JournalEntry.outcome == JournalOutcome(outcome))
            except ValueError:
                raise ValidationError("Outcome must be win, loss or breakeven.")
        if favorites_only:
            query = query.filter(JournalEntry.is_favorite.is_(True))
        if date_from:
            query = query.filter(JournalEntry.entry_at >= date_from)
        if date_to:
            query = query.filter(JournalEntry.entry_at <= date_to)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                JournalEntry.setup_reason.ilike(pattern),
                JournalEntry.execution_notes.ilike(pattern),
                JournalEntry.post_trade_analysis.ilike(pattern),
                JournalEntry.pair.ilike(pattern),
            ))

        entries = query.order_by(JournalEntry.entry_at.desc()).all()
        # Tags live in a JSON column, so they are matched in Python
        if tag:
            entries = [e for e in entries if tag in (e.tags or [])]
        return entries[offset:offset + limit]

    def get_statistics(self, db: Session, user_id: int) -> Dict[str, Any]:
        entries = db.query(JournalEntry).filter(JournalEntry.user_id == user_id).all()
        outcomes = Counter(e.outcome for e in entries if e.outcome is not None)
        wins = outcomes[JournalOutcome.WIN]
        losses = outcomes[JournalOutcome.LOSS]
        decided = wins + losses + outcomes[JournalOutcome.BREAKEVEN]

        ratios = [float(e.risk_reward_ratio) for e in entries if e.risk_reward_ratio is not None]
        pnls = [float(e.profit_loss) for e in entries if e.profit_loss is not None]
        pairs = Counter(e.pair for e in entries)

        return {
            "total_entries": len(entries),
            "wins": wins,
            "losses": losses,
            "breakeven": outcomes[JournalOutcome.BREAKEVEN],
            "win_rate": round(wins / decided * 100, 2) if decided else 0.0,
            "average_risk_reward": round(sum(ratios) / len(ratios), 2) if ratios else 0.0,
            "average_profit_loss": round(sum(pnls) / len(pnls), 2) if pnls else 0.0,
            "total_profit_loss": round(sum(pnls), 2),
            "most_traded_pairs": [{"pair": p, "count": c} for p, c in pairs.most_common(5)],
            "favorites": sum(1 for e in entries if e.is_favorite),
        }

    def _validated(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        values = {}
        if not partial or "pair" in data:
            pair = data.get("pair")
            if not pair or len(pair) > 20:
                raise ValidationError("Pair is required and may not be longer than 20 characters.")
            values["pair"] = normalize_pair(pair)
        if not partial or "direction" in data:
            try:
                values["direction"] = JournalDirection(data.get("direction"))
            except ValueError:
                raise ValidationError("Direction must be long or short.")
        if not partial and data.get("entry_price") is None:
            raise ValidationError("Entry price is required.")
        for name in PRICE_FIELDS + ("risk_reward_ratio",):
            if name in data:
                value = data[name]
                if value is not None and value < 0:
                    raise ValidationError(f"{name} must be zero or greater.")
                values[name] = value
        if "profit_loss" in data:
            values["profit_loss"] = data["profit_loss"]
        if "outcome" in data:
            if data["outcome"] is None:
                values["outcome"] = None
            else:
                try:
                    values["outcome"] = JournalOutcome(data["outcome"])
                except ValueError:
                    raise ValidationError("Outcome must be win, loss or breakeven.")
        if not partial or "entry_at" in data:
            if data.get("entry_at") is None:
                raise ValidationError("Entry time is required.")
            values["entry_at"] = data["entry_at"]
        if "exit_at" in data:
            values["exit_at"] = data["exit_at"]
            if (values["exit_at"] is not None and values.get("entry_at") is not None
                    and _naive(values["exit_at"]) < _naive(values["entry_at"])):
                raise ValidationError("Exit time must be on or after the entry time.")
        for name in TEXT_FIELDS:
            if name in data:
                values[name] = data[name]
        if "tags" in data:
            tags = data["tags"] or []
            if any(not isinstance(t, str) or len(t) > MAX_TAG_LENGTH for t in tags):
                raise ValidationError(f"Tags must be strings of at most {MAX_TAG_LENGTH} characters.")
            values["tags"] = list(tags)
        return values

    def _apply(self, entry: JournalEntry, values: Dict[str, Any]):
        for name, value in values.items():
            setattr(entry, name, value)

        if "risk_reward_ratio" not in values:
            derived = derive_risk_reward(
                _float(entry.entry_price), _float(entry.stop_loss), _float(entry.take_profit)
            )
            if derived is not None:
                entry.risk_reward_ratio = derived
        if "outcome" not in values and entry.outcome is None:
            entry.outcome = derive_outcome(_float(entry.profit_loss))


def _float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo else value


# Global journal service instance
journal_service = JournalService()
