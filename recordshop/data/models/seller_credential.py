from sqlalchemy import Column, Integer, String, DateTime

from recordshop.data.database import Base


class SellerCredentialModel(Base):
    """OAuth1 access token sprzedawcy zapisany po autoryzacji w marketplace."""

    __tablename__ = "seller_credentials"

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    access_token = Column(String(255), nullable=False)
    access_token_secret = Column(String(255), nullable=False)
    last_verified = Column(DateTime(timezone=True), nullable=False)
