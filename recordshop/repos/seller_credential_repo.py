from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from recordshop.data.models.seller_credential import SellerCredentialModel


class SellerCredentialRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_username(self, username: str) -> SellerCredentialModel | None:
        return self.db.execute(
            select(SellerCredentialModel).where(SellerCredentialModel.username == username)
        ).scalar_one_or_none()

    def latest(self) -> SellerCredentialModel | None:
        return self.db.execute(
            select(SellerCredentialModel).order_by(SellerCredentialModel.last_verified.desc()).limit(1)
        ).scalar_one_or_none()

    def upsert(self, username: str, access_token: str, access_token_secret: str, when: datetime) -> SellerCredentialModel:
        credential = self.get_by_username(username)
        if credential is None:
            credential = SellerCredentialModel(username=username)
            self.db.add(credential)
        credential.access_token = access_token
        credential.access_token_secret = access_token_secret
        credential.last_verified = when
        self.db.commit()
        self.db.refresh(credential)
        return credential

    def mark_verified(self, credential: SellerCredentialModel, when: datetime) -> None:
        credential.last_verified = when
        self.db.commit()

    def rollback(self):
        self.db.rollback()
