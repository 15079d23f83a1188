from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLAlchemyEnum

from database.init import Base
from enums.gateway_event_kind import GatewayEventKind, GatewayEventOutcome


class GatewayEvent(Base):
    """Every webhook delivery we received, with what we did about it"""

    __tablename__ = "gateway_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    kind = Column(SQLAlchemyEnum(GatewayEventKind), nullable=False)
    gateway_reference = Column(String(255), nullable=True, index=True)
    outcome = Column(SQLAlchemyEnum(GatewayEventOutcome), nullable=False, index=True)
    detail = Column(String(500), nullable=True)
    received_at = Column(DateTime, nullable=False)
