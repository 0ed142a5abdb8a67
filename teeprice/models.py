# teeprice/models.py
from sqlalchemy import Column, String, DateTime, Text
from datetime import datetime

from teeprice.database import Base


class PricingDocument(Base):
    """
    One course's full rule set (seasons, time bands, price rules, special
    overrides, base product) stored as the JSON export document.
    """
    __tablename__ = "pricing_documents"
    course_id = Column(String(120), primary_key=True)
    payload = Column(Text, nullable=False)  # JSON, camelCase keys
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
