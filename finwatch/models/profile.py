from sqlalchemy import Column, String
from finwatch.database import Base


class Profile(Base):
    """Contact details for a user; the SQL stand-in for the auth user table."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String(320), nullable=True)
    full_name = Column(String(200), nullable=True)
