from contextlib import contextmanager

from sqlalchemy.orm import Session

from doclib.errors import ValidationError


def coerce_id(value):
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value))
    except ValueError:
        raise ValidationError(f"Invalid id: {value}")


def apply_ordering(query, order_by, order_dir, allowed_columns):
    if order_by not in allowed_columns:
        raise ValidationError(
            f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}"
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query, limit, offset):
    return query.limit(limit).offset(offset)


@contextmanager
def atomic(db: Session):
    """Commit the block's writes as one unit, or roll all of them back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
