# healthsyntra/pending_checkout_recorder.py

from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from healthsyntra.entities import PendingCheckout


def record_pending_checkout(
    session_factory: sessionmaker,
    *,
    session_id: str,
    user_email: str,
    plan_id: Optional[str],
    plan_name: str,
    amount_minor: int,
    currency: str,
) -> str:
    """
    Create a PendingCheckout row in state PENDING and return its id.
    """
    session: Session = session_factory()
    try:
        pending = PendingCheckout(
            session_id=session_id,
            user_email=user_email,
            plan_id=plan_id,
            plan_name=plan_name,
            amount_minor=amount_minor,
            currency=currency,
            status="PENDING",
        )
        session.add(pending)
        session.commit()
        return pending.id
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_pending_checkout(session_factory: sessionmaker, session_id: str) -> Optional[dict]:
    session: Session = session_factory()
    try:
        row = (
            session.query(PendingCheckout)
                .filter(PendingCheckout.session_id == str(session_id))
                .one_or_none()
        )
        if row is None:
            return None
        return {
            "session_id": row.session_id,
            "user_email": row.user_email,
            "plan_id": row.plan_id,
            "plan_name": row.plan_name,
            "amount_minor": row.amount_minor,
            "currency": row.currency,
            "status": row.status,
        }
    finally:
        session.close()
