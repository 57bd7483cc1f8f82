# vetclinic/models/error_log.py
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, ForeignKey

from vetclinic.db.base import Base, MYSQL_ARGS

# kinds of rows written to error_logs
PARTIAL_FAILURE = "partial_failure"  # main write committed, follow-up write failed
UNHANDLED = "unhandled"  # 500 from the global exception handler


class ErrorLog(Base):
    """Failures that need a human look after the request has been answered."""
    __tablename__ = "error_logs"
    __table_args__ = MYSQL_ARGS

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(30), nullable=False, default=UNHANDLED, index=True)

    description = Column(String(1000), nullable=True)
    endpoint = Column(String(255), nullable=True)  # "POST /api/invoices"
    module = Column(String(255), nullable=True)
    function = Column(String(255), nullable=True)
    http_status = Column(Integer, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # ids of the rows involved, e.g. {"invoice_id": 12, "clinical_record_id": 4}
    context = Column(JSON, nullable=True)
    stack_trace = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
