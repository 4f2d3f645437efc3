# Overview: Allocation of human-readable sale references.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import ReferenceSequence, Sale


SALE_SEQUENCE = "SALE"
SALE_PREFIX = "SALE-"


def _allocate(name: str) -> int:
    """
    Hand out the next number of a sequence.

    Must run inside the caller's write transaction; the UPDATE takes the
    row lock so concurrent allocations get distinct numbers.
    """
    stmt = (
        update(ReferenceSequence)
        .where(ReferenceSequence.name == name)
        .values(next_number=ReferenceSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(ReferenceSequence.next_number)
            .filter_by(name=name)
            .scalar()
        )
        return current - 1

    seq = ReferenceSequence(name=name, next_number=2)
    db.session.add(seq)
    db.session.flush()
    return 1


def next_sale_reference(pad: int = 6) -> str:
    """
    Next free sale reference, e.g. "SALE-000042".

    Numbers only grow. A candidate already taken by a caller-supplied
    reference is skipped.
    """
    while True:
        candidate = f"{SALE_PREFIX}{_allocate(SALE_SEQUENCE):0{pad}d}"
        taken = db.session.query(Sale.id).filter_by(reference=candidate).first()
        if taken is None:
            return candidate


def reference_exists(reference: str) -> bool:
    return db.session.query(Sale.id).filter_by(reference=reference).first() is not None
