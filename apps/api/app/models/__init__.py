# Import SQLAlchemy models so they register on Base.metadata
from app.models.distribution_lease import DistributionLease  # noqa: F401
from app.models.order_event import OrderEvent, OrderEventType  # noqa: F401
from app.models.token_order import OrderStatus, OrderType, TokenOrder  # noqa: F401
