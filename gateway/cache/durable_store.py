"""
Durable store: permanent storage for entities in their final state.

Final box scores don't change, so they are stored permanently to avoid
re-fetching and wasting upstream quota. Records are written once and never
overwritten in place. Deciding *what* may be written (the durable flag and
the substructure check) is the caller's job.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from gateway.models import DurableRecord
from .core import CacheEntry, utcnow

logger = logging.getLogger("cache.durable")


class DurableStore:
    """
    SQLAlchemy-backed permanent record store, addressed by canonical key.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def get(self, key: str) -> Optional[CacheEntry]:
        """Retrieve a stored record, or None (read errors count as a miss)."""
        session = self._session_factory()
        try:
            record = session.get(DurableRecord, key)
            if record is None:
                return None
            cached_at = record.cached_at
            if cached_at.tzinfo is None:
                cached_at = cached_at.replace(tzinfo=timezone.utc)
            return CacheEntry(
                value=json.loads(record.value),
                cached_at=cached_at,
                policy_class=record.policy_class,
            )
        except (SQLAlchemyError, ValueError) as e:
            logger.warning(f"Durable store read failed for {key}: {e}")
            return None
        finally:
            session.close()

    def contains(self, key: str) -> bool:
        session = self._session_factory()
        try:
            return session.get(DurableRecord, key) is not None
        except SQLAlchemyError as e:
            logger.warning(f"Durable store lookup failed for {key}: {e}")
            return False
        finally:
            session.close()

    def set(self, key: str, value: Any, policy_class: str) -> bool:
        """
        Store a record permanently.

        Returns:
            True if written; False if a record already exists for the key or
            the write failed. Existing records are never replaced.
        """
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Durable store: value for {key} is not serializable: {e}")
            return False

        session = self._session_factory()
        try:
            session.add(DurableRecord(
                key=key,
                value=payload,
                policy_class=policy_class,
                cached_at=self._clock(),
            ))
            session.commit()
            logger.info(f"Stored durable record: {key}")
            return True
        except IntegrityError:
            session.rollback()
            logger.warning(f"Durable record already exists, not overwriting: {key}")
            return False
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Durable store write failed for {key}: {e}")
            return False
        finally:
            session.close()

    def invalidate(self, key: str) -> bool:
        """
        Delete a durable record so it can be rewritten.

        Returns:
            True if a record was found and removed
        """
        session = self._session_factory()
        try:
            deleted = (
                session.query(DurableRecord)
                .filter(DurableRecord.key == key)
                .delete(synchronize_session=False)
            )
            session.commit()
            if deleted:
                logger.info(f"Invalidated durable record: {key}")
            return bool(deleted)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Durable store delete failed for {key}: {e}")
            return False
        finally:
            session.close()

    def stats(self) -> Dict[str, Any]:
        session = self._session_factory()
        try:
            count = session.query(func.count(DurableRecord.key)).scalar() or 0
            return {"records": count}
        except SQLAlchemyError as e:
            logger.warning(f"Durable store stats failed: {e}")
            return {"records": None}
        finally:
            session.close()
