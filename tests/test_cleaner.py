from __future__ import annotations

from datetime import datetime, timedelta, timezone

from metropass.src import cleaner
from metropass.src.db import UserToken, sessionMaker


def test_remove_expired_tokens_keeps_live_ones(seed):
    user_id = seed.user()
    now = datetime.now(timezone.utc)
    with sessionMaker() as s:
        s.add_all(
            [
                UserToken(user_id=user_id, expires_in=60, expires_at=now - timedelta(hours=1)),
                UserToken(user_id=user_id, expires_in=60, expires_at=now + timedelta(hours=1)),
            ]
        )
        s.commit()

    with sessionMaker() as s:
        assert cleaner.removeExpiredTokens(s, UserToken) == 1
        assert s.query(UserToken).count() == 1


def test_expire_trips_without_lapsed_trips(seed):
    with sessionMaker() as s:
        assert cleaner.expireTrips(s) == 0
