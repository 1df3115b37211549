from sqlalchemy import Column, String, Boolean, Date, DateTime, Text, Enum, Index, UniqueConstraint
from datetime import datetime
from models.base import Base, DataSource, JSONType


class APLEntry(Base):
    """
    Canonical eligibility record: one approved product (UPC) for one state,
    effective from a given date.

    Design:
    - Natural key is (state, upc, effective_date); the primary key is derived
      from it and never changes once written
    - Restriction columns hold the JSON form of the pydantic restriction models
    - verified and created_at are owned by the row, not by the feed
    """
    __tablename__ = "apl_entries"

    id = Column(String(64), primary_key=True)

    # Natural key
    state = Column(String(2), nullable=False, index=True)
    upc = Column(String(14), nullable=False, index=True)
    effective_date = Column(Date, nullable=False)

    # Eligibility
    eligible = Column(Boolean, nullable=False, default=True)
    benefit_category = Column(String(100), nullable=False, index=True)
    benefit_subcategory = Column(String(100), nullable=True)
    participant_types = Column(JSONType, nullable=True)  # null / [] means all participants
    product_description = Column(Text, nullable=True)

    # Restrictions
    size_restriction = Column(JSONType, nullable=True)
    brand_restriction = Column(JSONType, nullable=True)
    additional_restrictions = Column(JSONType, nullable=True)

    expiration_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    # Provenance
    data_source = Column(Enum(DataSource), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    source_hash = Column(String(64), nullable=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("state", "upc", "effective_date", name="uq_apl_entry_natural_key"),
        Index("idx_apl_state_upc", "state", "upc"),
        Index("idx_apl_state_category", "state", "benefit_category"),
    )

    def __repr__(self) -> str:
        return f"<APLEntry {self.state}:{self.upc} from {self.effective_date}>"
