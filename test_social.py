"""
Tests for following traders, follower lists and trader search.
"""
import pytest

from app.core.exceptions import CopyTradingNotAllowedError, InvalidStateError, NotFoundError, ValidationError
from app.models.notification import Notification
from app.services.copy_trading import copy_trading_service
from app.services.notification_service import notification_service
from app.services.social_service import social_service


def _types(db, user_id):
    return [n.type for n in db.query(Notification).filter(Notification.user_id == user_id).all()]


def test_follow_notifies_trader(db, make_user):
    trader = make_user("Alice")
    fan = make_user("Bob")

    social_service.follow(db, fan.id, trader.id)

    assert social_service.is_following(db, fan.id, trader.id)
    assert not social_service.is_following(db, trader.id, fan.id)
    notification = db.query(Notification).filter(Notification.user_id == trader.id).one()
    assert notification.type == "new_follower"
    assert notification.data["follower_id"] == fan.id


def test_follow_rules(db, make_user):
    trader = make_user()
    fan = make_user()

    with pytest.raises(ValidationError):
        social_service.follow(db, fan.id, fan.id)
    with pytest.raises(NotFoundError):
        social_service.follow(db, fan.id, 999)

    social_service.follow(db, fan.id, trader.id)
    with pytest.raises(InvalidStateError):
        social_service.follow(db, fan.id, trader.id)


def test_new_follower_preference_is_respected(db, make_user):
    trader = make_user()
    fan = make_user()
    notification_service.update_preferences(db, trader.id, {"new_follower": False})

    social_service.follow(db, fan.id, trader.id)

    assert social_service.is_following(db, fan.id, trader.id)
    assert "new_follower" not in _types(db, trader.id)


def test_unfollow(db, make_user):
    trader = make_user()
    fan = make_user()
    social_service.follow(db, fan.id, trader.id)

    assert social_service.unfollow(db, fan.id, trader.id) is True
    assert social_service.unfollow(db, fan.id, trader.id) is False
    assert not social_service.is_following(db, fan.id, trader.id)
    with pytest.raises(NotFoundError):
        social_service.unfollow(db, fan.id, 999)


def test_follower_and_following_lists(db, make_user):
    trader = make_user()
    first = make_user()
    second = make_user()
    social_service.follow(db, first.id, trader.id)
    social_service.follow(db, second.id, trader.id)
    social_service.follow(db, trader.id, first.id)

    followers = social_service.list_followers(db, trader.id)
    assert followers["total"] == 2
    assert [f["id"] for f in followers["followers"]] == [second.id, first.id]
    by_id = {f["id"]: f for f in followers["followers"]}
    assert by_id[first.id]["followers_count"] == 1
    assert by_id[first.id]["following_count"] == 1

    page = social_service.list_followers(db, trader.id, limit=1, offset=1)
    assert page["total"] == 2
    assert [f["id"] for f in page["followers"]] == [first.id]

    following = social_service.list_following(db, trader.id)
    assert [f["id"] for f in following["following"]] == [first.id]
    assert following["following"][0]["followers_count"] == 1


def test_popular_traders_and_search(db, make_user):
    star = make_user("Star Trader")
    rising = make_user("Rising Trader")
    viewer = make_user("Viewer")
    other = make_user("Other")
    social_service.follow(db, viewer.id, star.id)
    social_service.follow(db, other.id, star.id)
    social_service.follow(db, other.id, rising.id)

    popular = social_service.popular_traders(db, viewer_id=viewer.id)
    assert [t["id"] for t in popular][:2] == [star.id, rising.id]
    assert viewer.id not in [t["id"] for t in popular]
    assert popular[0]["followers_count"] == 2
    assert popular[0]["is_following"] is True
    assert popular[1]["is_following"] is False

    found = social_service.search(db, "STAR", viewer_id=viewer.id)
    assert [t["id"] for t in found] == [star.id]
    assert found[0]["is_following"] is True
    by_email = social_service.search(db, other.email)
    assert [t["id"] for t in by_email] == [other.id]
    with pytest.raises(ValidationError):
        social_service.search(db, "  ")


def test_overview_and_profile(db, make_user):
    trader = make_user()
    fan = make_user()
    social_service.follow(db, fan.id, trader.id)

    overview = social_service.overview(db, trader.id)
    assert overview["stats"] == {"followers": 1, "following": 0}
    assert [f["id"] for f in overview["recent_followers"]] == [fan.id]
    assert [t["id"] for t in overview["popular_traders"]] == [fan.id]

    profile = social_service.trader_profile(db, fan.id, trader.id)
    assert profile["is_following"] is True
    assert profile["trader"]["stats"]["followers_count"] == 1
    assert profile["trader"]["performance"]["series"][0]["data"] == []


def test_unfollowing_closes_followers_only_access(db, make_user):
    trader = make_user()
    fan = make_user()
    copy_trading_service.update_settings(db, trader.id, "followers_only", auto_approve_followers=True)
    social_service.follow(db, fan.id, trader.id)
    social_service.unfollow(db, fan.id, trader.id)

    with pytest.raises(CopyTradingNotAllowedError):
        copy_trading_service.start_copying(db, fan.id, trader.id, 50)
