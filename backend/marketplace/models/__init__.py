"""ORM Models — SQLAlchemy declarative models for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Product owns the denormalized rating aggregate; orders and reviews reference it

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all/autogenerate
"""

from marketplace.models.product import Product  # noqa: F401
from marketplace.models.order import Order  # noqa: F401
from marketplace.models.review import Review  # noqa: F401
