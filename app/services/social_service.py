"""
Social trading: following traders, follower lists, trader search and
profiles.

A follow is what unlocks copying a followers-only trader, so following
and unfollowing are the social half of the copy trading privacy rules.
"""
import logging
from typing import Any, Dict, Iterable, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError, ValidationError
from app.models.user import Follow, User
from app.services.notification_service import notification_service
from app.services.strategy_service import strategy_service
from app.services.trading_stats import trading_stats_service
from app.services.wallet_service import wallet_service

logger = logging.getLogger(__name__)


class SocialService:
    """Service for follow links between users."""

    def __init__(self, notifications=None, wallets=None, stats=None, strategies=None):
        self.notifications = notifications or notification_service
        self.wallets = wallets or wallet_service
        self.stats = stats or trading_stats_service
        self.strategies = strategies or strategy_service

    def follow(self, db: Session, user_id: int, trader_id: int) -> Follow:
        """Follow a trader and tell them about it."""
        if user_id == trader_id:
            raise ValidationError("You cannot follow yourself.")
        follower = self.wallets.get_user(db, user_id)
        trader = self.wallets.get_user(db, trader_id)

        if self.is_following(db, user_id, trader_id):
            raise InvalidStateError("You are already following this trader.")

        link = Follow(follower_id=user_id, following_id=trader_id)
        db.add(link)
        db.flush()

        self.notifications.notify(db, trader_id, "new_follower", {
            "title": "New follower",
            "message": f"{follower.name} started following you.",
            "follower_id": user_id,
            "follower_name": follower.name,
        })
        logger.info(f"User {user_id} followed trader {trader.id}")
        return link

    def unfollow(self, db: Session, user_id: int, trader_id: int) -> bool:
        """Stop following a trader; returns whether a follow was removed."""
        self.wallets.get_user(db, trader_id)
        link = db.query(Follow).filter(
            Follow.follower_id == user_id,
            Follow.following_id == trader_id
        ).first()
        if link is None:
            return False
        db.delete(link)
        db.flush()
        logger.info(f"User {user_id} unfollowed trader {trader_id}")
        return True

    def is_following(self, db: Session, follower_id: int, following_id: int) -> bool:
        return db.query(Follow).filter(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id
        ).first() is not None

    def following_ids(self, db: Session, user_id: int) -> List[int]:
        return [row[0] for row in db.query(Follow.following_id).filter(Follow.follower_id == user_id)]

    def follow_counts(self, db: Session, user_ids: Iterable[int]) -> Dict[int, Dict[str, int]]:
        """Followers and following counts per user."""
        ids = list(user_ids)
        counts = {user_id: {"followers_count": 0, "following_count": 0} for user_id in ids}
        if not ids:
            return counts

        followers = db.query(Follow.following_id, func.count(Follow.id)).filter(
            Follow.following_id.in_(ids)
        ).group_by(Follow.following_id).all()
        following = db.query(Follow.follower_id, func.count(Follow.id)).filter(
            Follow.follower_id.in_(ids)
        ).group_by(Follow.follower_id).all()

        for user_id, count in followers:
            counts[user_id]["followers_count"] = count
        for user_id, count in following:
            counts[user_id]["following_count"] = count
        return counts

    def list_followers(self, db: Session, user_id: int, limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        """Users following this user, most recent first."""
        query = db.query(User, Follow.created_at).join(
            Follow, Follow.follower_id == User.id
        ).filter(Follow.following_id == user_id)
        return self._page(db, query, "followers", limit, offset)

    def list_following(self, db: Session, user_id: int, limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        """Users this user follows, most recent first."""
        query = db.query(User, Follow.created_at).join(
            Follow, Follow.following_id == User.id
        ).filter(Follow.follower_id == user_id)
        return self._page(db, query, "following", limit, offset)

    def _page(self, db: Session, query, key: str, limit: int, offset: int) -> Dict[str, Any]:
        total = query.count()
        rows = query.order_by(Follow.created_at.desc(), Follow.id.desc()).offset(offset).limit(limit).all()
        counts = self.follow_counts(db, [user.id for user, _ in rows])
        users = []
        for user, followed_at in rows:
            entry = _summary(user)
            entry.update(counts[user.id])
            entry["followed_at"] = followed_at.isoformat() if followed_at else None
            users.append(entry)
        return {key: users, "total": total, "limit": limit, "offset": offset}

    def popular_traders(self, db: Session, limit: int = 10, viewer_id: int = None) -> List[Dict[str, Any]]:
        """Users ranked by follower count; the viewer is left out."""
        query = self._ranked(db)
        if viewer_id is not None:
            query = query.filter(User.id != viewer_id)
        return self._rank_rows(db, query.limit(limit).all(), viewer_id)

    def search(self, db: Session, text: str, limit: int = 10, viewer_id: int = None) -> List[Dict[str, Any]]:
        """Traders whose name or e-mail contains the text, most followed first."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("A search query is required.")
        pattern = f"%{text}%"
        rows = self._ranked(db).filter(
            or_(User.name.ilike(pattern), User.email.ilike(pattern))
        ).limit(limit).all()
        return self._rank_rows(db, rows, viewer_id)

    def _ranked(self, db: Session):
        followers_count = func.count(Follow.id).label("followers_count")
        return db.query(User, followers_count).outerjoin(
            Follow, Follow.following_id == User.id
        ).group_by(User.id).order_by(followers_count.desc(), User.id.asc())

    def _rank_rows(self, db: Session, rows, viewer_id: int = None) -> List[Dict[str, Any]]:
        followed = set(self.following_ids(db, viewer_id)) if viewer_id is not None else set()
        traders = []
        for user, followers_count in rows:
            entry = _summary(user)
            entry["followers_count"] = followers_count
            entry["is_following"] = user.id in followed
            traders.append(entry)
        return traders

    def overview(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Follow stats, the five latest followers and popular traders."""
        self.wallets.get_user(db, user_id)
        counts = self.follow_counts(db, [user_id])[user_id]
        return {
            "stats": {"followers": counts["followers_count"], "following": counts["following_count"]},
            "recent_followers": self.list_followers(db, user_id, limit=5)["followers"],
            "popular_traders": self.popular_traders(db, limit=5, viewer_id=user_id),
        }

    def trader_profile(self, db: Session, viewer_id: int, trader_id: int) -> Dict[str, Any]:
        trader = self.wallets.get_user(db, trader_id)
        counts = self.follow_counts(db, [trader_id])[trader_id]
        profile = _summary(trader)
        profile["stats"] = counts
        profile["performance"] = self.stats.equity_curve(db, trader_id)
        profile["strategies"] = self.strategies.strategies_for(db, trader_id)
        return {"trader": profile, "is_following": self.is_following(db, viewer_id, trader_id)}


def _summary(user: User) -> Dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email}


# Global service instance
social_service = SocialService()
