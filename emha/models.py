import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    return str(uuid.uuid4())


# On Postgres the tables are built from schema.catalog; these variants keep
# the ORM column types the same as the ones the catalog creates.
UUIDType = String(36).with_variant(postgresql.UUID(as_uuid=False), "postgresql")
TextList = JSON().with_variant(postgresql.ARRAY(Text), "postgresql")
Jsonb = JSON().with_variant(postgresql.JSONB(), "postgresql")


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    AMBASSADOR = "ambassador"
    ADMIN = "admin"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class User(Base):
    __tablename__ = "users"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.PATIENT.value, nullable=False)
    user_metadata = Column(Jsonb, default=dict, nullable=True)  # Mirror of auth metadata blob
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AmbassadorProfile(Base):
    """
    Ambassador profile record. The live column set drifts; the columns the
    application expects are listed in schema.catalog and reconciled before use.
    The catalog wins where the two differ: on Postgres the id references
    auth.users and updated_at is kept by a trigger. The users foreign key
    below only shapes the SQLite tables used in development and tests.
    """

    __tablename__ = "ambassador_profiles"

    id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    full_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    phone_number = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    specialty = Column(Text, nullable=True)
    specialties = Column(TextList, default=list, nullable=True)
    languages = Column(TextList, default=list, nullable=True)
    education = Column(Jsonb, default=list, nullable=True)
    experience = Column(Jsonb, default=list, nullable=True)
    therapy_types = Column("therapyTypes", Jsonb, default=list, nullable=True)
    services = Column(TextList, default=list, nullable=True)
    awards = Column(Jsonb, default=list, nullable=True)
    gallery_images = Column(TextList, default=list, nullable=True)
    credentials = Column(Text, nullable=True)
    gender = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    availability_status = Column(Text, nullable=True)
    consultation_fee = Column(Numeric, default=0, nullable=True)
    is_free = Column("isFree", Boolean, default=True, nullable=True)
    avatar_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    patient_id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    ambassador_id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    date = Column(String(10).with_variant(Date(), "postgresql"), nullable=False)  # YYYY-MM-DD
    time = Column(String(8).with_variant(Time(), "postgresql"), nullable=True)  # HH:MM[:SS]
    status = Column(String(20), default=BookingStatus.PENDING.value, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="appointments_status_check",
        ),
    )


class Review(Base):
    __tablename__ = "reviews"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    booking_id = Column(UUIDType, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)
    ambassador_id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    user_id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"))
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="reviews_rating_check"),)
