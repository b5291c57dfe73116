import datetime, logging
from metropass.src.db import sessionMaker, UserToken
from metropass.src.ticketing import expireLapsedTrips
from sqlalchemy.orm import Session
from sqlalchemy import delete

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Cleaner")


def removeExpiredTokens(session: Session, tokenClass) -> int:
    currentTime = datetime.datetime.now(datetime.timezone.utc)
    result = session.execute(
        delete(tokenClass).where(tokenClass.expires_at < currentTime)
    )
    session.commit()
    deletedCount = result.rowcount
    logger.info(f"Removed {deletedCount} tokens from {tokenClass.__tablename__} table")
    return deletedCount


def expireTrips(session: Session) -> int:
    expiredCount = expireLapsedTrips(session)
    logger.info(f"Marked {expiredCount} lapsed trips as expired")
    return expiredCount


def main():
    try:
        with sessionMaker() as session:
            removeExpiredTokens(session, UserToken)
            expireTrips(session)
    except Exception:
        logger.exception("cleaner.py failed")


if __name__ == "__main__":
    main()
