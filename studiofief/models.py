import enum
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from . import db, login_manager


def _enum(cls, default=None, nullable=False):
    return db.Column(db.Enum(cls, native_enum=False, length=20), nullable=nullable, default=default)


# -------------------------
# Enumerations
# -------------------------
class BusinessRole(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"

    @property
    def rank(self) -> int:
        return {"VIEWER": 0, "MEMBER": 1, "ADMIN": 2, "OWNER": 3}[self.value]


class DiscountType(str, enum.Enum):
    NONE = "NONE"
    PERCENT = "PERCENT"
    AMOUNT = "AMOUNT"


class BillingUnit(str, enum.Enum):
    ONE_OFF = "ONE_OFF"
    MONTHLY = "MONTHLY"


class QuoteStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    SIGNED = "SIGNED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    WIRE = "WIRE"
    CARD = "CARD"
    CHECK = "CHECK"
    CASH = "CASH"
    OTHER = "OTHER"


class ProjectQuoteStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    SIGNED = "SIGNED"


class DepositStatus(str, enum.Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    PENDING = "PENDING"
    PAID = "PAID"


# -------------------------
# Users + businesses
# -------------------------
class User(db.Model, UserMixin):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = db.relationship("BusinessMembership", back_populates="user", cascade="all, delete-orphan")

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(
            password,
            method="pbkdf2:sha256",
            salt_length=16
        )

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def role_in(self, business_id: int):
        m = next((m for m in self.memberships if m.business_id == business_id), None)
        return m.role if m else None


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


class Business(db.Model):
    __tablename__ = "businesses"
    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="EUR")

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    settings = db.relationship(
        "BusinessSettings",
        uselist=False,
        back_populates="business",
        cascade="all, delete-orphan",
    )


class BusinessSettings(db.Model):
    __tablename__ = "business_settings"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), unique=True, nullable=False)
    business = db.relationship("Business", back_populates="settings")

    default_deposit_percent = db.Column(db.Integer, nullable=False, default=30)
    vat_enabled = db.Column(db.Boolean, nullable=False, default=False)
    vat_rate = db.Column(db.Integer, nullable=False, default=20)
    payment_terms_days = db.Column(db.Integer, nullable=False, default=30)

    # numbering: "{prefix}-{year}-{seq:04d}"
    quote_prefix = db.Column(db.String(20), nullable=False, default="SF-DEV")
    invoice_prefix = db.Column(db.String(20), nullable=False, default="SF-FAC")
    next_quote_number = db.Column(db.Integer, nullable=False, default=1)
    next_invoice_number = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BusinessMembership(db.Model):
    __tablename__ = "business_memberships"
    __table_args__ = (db.UniqueConstraint("business_id", "user_id", name="uq_membership_business_user"),)
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    business = db.relationship("Business")

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user = db.relationship("User", back_populates="memberships")

    role = _enum(BusinessRole, default=BusinessRole.VIEWER)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Client(db.Model):
    __tablename__ = "clients"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# -------------------------
# Catalog
# -------------------------
class Service(db.Model):
    __tablename__ = "services"
    __table_args__ = (db.UniqueConstraint("business_id", "code", name="uq_service_business_code"),)
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    code = db.Column(db.String(60), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    default_price_cents = db.Column(db.BigInteger, nullable=True)
    tjm_cents = db.Column(db.BigInteger, nullable=True)  # daily rate fallback
    vat_rate = db.Column(db.Integer, nullable=True)

    is_archived = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# -------------------------
# Projects
# -------------------------
class Project(db.Model):
    __tablename__ = "projects"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    business = db.relationship("Business")

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    client = db.relationship("Client")

    name = db.Column(db.String(200), nullable=False)

    quote_status = _enum(ProjectQuoteStatus, default=ProjectQuoteStatus.DRAFT)
    deposit_status = _enum(DepositStatus, default=DepositStatus.PENDING)
    deposit_paid_at = db.Column(db.DateTime, nullable=True)

    # quotes.id of the billing reference; no FK since quotes already reference projects
    billing_quote_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    services = db.relationship(
        "ProjectService",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectService.position.asc(), ProjectService.id.asc()",
    )


class ProjectService(db.Model):
    __tablename__ = "project_services"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    project = db.relationship("Project", back_populates="services")

    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    service = db.relationship("Service")

    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.BigInteger, nullable=True)  # project override

    discount_type = _enum(DiscountType, default=DiscountType.NONE)
    discount_value = db.Column(db.Integer, nullable=True)  # percent 0-100 or cents

    billing_unit = _enum(BillingUnit, default=BillingUnit.ONE_OFF)
    unit_label = db.Column(db.String(40), nullable=True)

    title_override = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=True)

    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# -------------------------
# Quotes
# -------------------------
class Quote(db.Model):
    __tablename__ = "quotes"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    project = db.relationship("Project", backref=db.backref("quotes", lazy="dynamic"))

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    number = db.Column(db.String(40), nullable=True, index=True)
    status = _enum(QuoteStatus, default=QuoteStatus.DRAFT)

    # header snapshot, captured at creation
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    deposit_percent = db.Column(db.Integer, nullable=False, default=0)
    vat_rate = db.Column(db.Integer, nullable=True)  # None when VAT disabled
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    deposit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)

    issued_at = db.Column(db.DateTime, nullable=True)
    signed_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.id.asc()",
    )


class QuoteItem(db.Model):
    __tablename__ = "quote_items"
    id = db.Column(db.Integer, primary_key=True)

    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=False, index=True)
    quote = db.relationship("Quote", back_populates="items")

    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)

    label = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = _enum(DiscountType, default=DiscountType.NONE)
    discount_value = db.Column(db.Integer, nullable=True)
    original_unit_price_cents = db.Column(db.BigInteger, nullable=True)

    billing_unit = _enum(BillingUnit, default=BillingUnit.ONE_OFF)
    unit_label = db.Column(db.String(40), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)


# -------------------------
# Invoices + payments
# -------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    project = db.relationship("Project", backref=db.backref("invoices", lazy="dynamic"))

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    # set when generated 1:1 from a quote; None for staged invoices
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True, index=True)
    quote = db.relationship("Quote", backref=db.backref("invoices", lazy="dynamic"))

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    number = db.Column(db.String(40), nullable=True, index=True)
    status = _enum(InvoiceStatus, default=InvoiceStatus.DRAFT)

    currency = db.Column(db.String(3), nullable=False, default="EUR")
    deposit_percent = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    deposit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)

    issued_at = db.Column(db.DateTime, nullable=True)
    due_at = db.Column(db.DateTime, nullable=True, index=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id.asc()",
    )
    payments = db.relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    invoice = db.relationship("Invoice", back_populates="items")

    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)

    label = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = _enum(DiscountType, default=DiscountType.NONE)
    discount_value = db.Column(db.Integer, nullable=True)
    original_unit_price_cents = db.Column(db.BigInteger, nullable=True)

    billing_unit = _enum(BillingUnit, default=BillingUnit.ONE_OFF)
    unit_label = db.Column(db.String(40), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)


class Payment(db.Model):
    __tablename__ = "payments"
    __table_args__ = (db.CheckConstraint("amount_cents > 0", name="ck_payment_amount_positive"),)
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    invoice = db.relationship("Invoice", back_populates="payments")

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=False)
    method = _enum(PaymentMethod, default=PaymentMethod.WIRE)
    reference = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    deleted_at = db.Column(db.DateTime, nullable=True)  # soft delete

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# -------------------------
# Audit
# -------------------------
class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=True, index=True)

    entity = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.Integer)
    action = db.Column(db.String(50), nullable=False)
    field = db.Column(db.String(100))
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)

    performed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    performed_by = db.relationship("User")

    performed_at = db.Column(db.DateTime, default=datetime.utcnow)
