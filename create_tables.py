# create_tables.py
from tender_intel.database import engine, Base
from tender_intel.models import CompanyProfile, CompanyContract, HistoricalTender, AIUsageRecord

# Create all tables
Base.metadata.create_all(bind=engine)
print("✓ Company, historical tender and AI usage tables created successfully!")
