"""
HoldingModel: Abstract base class for holding-scoped models.

Every table that belongs to one holding (organisation tree, workflow
templates, requisitions) inherits from HoldingModel instead of db.Model
directly. This adds:
  - holding_id FK column with index
  - query_for_holding(holding_id) classmethod
"""

from approval_engine.models import db


class HoldingModel(db.Model):
    """Abstract base for holding-scoped tables."""
    __abstract__ = True

    holding_id = db.Column(
        db.Integer,
        db.ForeignKey("holdings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_holding(cls, holding_id):
        """Return a query filtered by holding_id."""
        return cls.query.filter_by(holding_id=holding_id)
