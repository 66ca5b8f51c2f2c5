# tender_intel/models/company.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Numeric, Date, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tender_intel.database import Base

class CompanyProfile(Base):
    __tablename__ = "company_profiles"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(String(36), nullable=False, index=True)  # Owning user account, no FK
    company_name = Column(String(255), nullable=False)
    nit = Column(String(50), nullable=True)
    city = Column(String(120), nullable=True)
    department = Column(String(120), nullable=True)
    economic_sector = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    # 8-digit UNSPSC codes, category = first 4 digits
    unspsc_codes = Column(JSON, default=list)

    # Financial indicators (all nullable until the company fills them in)
    liquidity_index = Column(Numeric(12, 4), nullable=True)
    indebtedness_index = Column(Numeric(12, 4), nullable=True)
    working_capital = Column(Numeric(20, 2), nullable=True)
    equity = Column(Numeric(20, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    contracts = relationship("CompanyContract", back_populates="company", cascade="all, delete-orphan")

class CompanyContract(Base):
    __tablename__ = "company_contracts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("company_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    contract_number = Column(String(100), nullable=True)
    client_name = Column(String(255), nullable=False)
    contract_value = Column(Numeric(20, 2), nullable=False, default=0)
    execution_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    unspsc_codes = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationship
    company = relationship("CompanyProfile", back_populates="contracts")

    __table_args__ = (
        CheckConstraint("contract_value >= 0", name="ck_company_contracts_value_non_negative"),
    )
