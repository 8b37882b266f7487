from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from isp_messaging.db.database import Base
from isp_messaging.models.message_queue import utcnow

ACTIVE_BILLING_STATUS = 2

class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    contact_number_primary = Column(String(30), nullable=True)
    barangay_id = Column(String(50), nullable=True, index=True)
    location = Column(String(100), nullable=True, index=True)

    billing_accounts = relationship("BillingAccount", back_populates="customer")

class BillingAccount(Base):
    __tablename__ = "billing_accounts"

    id = Column(Integer, primary_key=True, index=True)
    account_no = Column(String(50), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    billing_status_id = Column(Integer, nullable=False, default=ACTIVE_BILLING_STATUS)

    customer = relationship("Customer", back_populates="billing_accounts")
    technical_detail = relationship("TechnicalDetail", back_populates="account", uselist=False)

class TechnicalDetail(Base):
    __tablename__ = "technical_details"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("billing_accounts.id"), nullable=False)
    lcp = Column(String(100), nullable=True, index=True)
    lcpnap = Column(String(100), nullable=True, index=True)

    account = relationship("BillingAccount", back_populates="technical_detail")

class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    desired_plan = Column(String(100), nullable=True)
    status = Column(String(30), nullable=False, default="Pending")
    created_at = Column(DateTime, default=utcnow)

    job_orders = relationship("JobOrder", back_populates="application")

class JobOrder(Base):
    __tablename__ = "job_orders"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False)
    onsite_status = Column(String(30), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    application = relationship("Application", back_populates="job_orders")

class SmsConfig(Base):
    __tablename__ = "sms_config"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=True)
    password = Column(String(255), nullable=True)
    api_code = Column(String(100), nullable=True)
    sender_id = Column(String(50), nullable=True)

class SmsBlastLog(Base):
    __tablename__ = "sms_blast_logs"

    id = Column(Integer, primary_key=True, index=True)
    message = Column(Text, nullable=False)
    filter_kind = Column(String(20), nullable=False)
    filter_value = Column(String(100), nullable=False)
    message_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
