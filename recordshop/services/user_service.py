# recordshop/services/user_service.py
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recordshop.data.models.user import UserModel
from recordshop.domain.schemas import UserCreate, UserRead
from recordshop.repos.user_repo import UserRepo
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


class UserService:
    """
    Konto z warstwy auth - tylko to, czego potrzebuja koszyk i maile.
    create_user jest idempotentne: ponowne wywolanie uzupelnia brakujace pola.
    """

    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_user(self, payload: UserCreate) -> UserRead:
        user = self.repo.get_user(payload.id)

        if user is not None and (payload.email in (None, user.email)) and (payload.name in (None, user.name)):
            return UserRead.model_validate(user)

        if payload.email:
            owner = self.repo.get_by_email(payload.email)
            if owner is not None and owner.id != payload.id:
                raise ValueError("Email already in use")

        if user is None:
            user = UserModel(id=payload.id)
            logger.info(f"Registering user {payload.id}")
        if payload.email is not None:
            user.email = payload.email
        if payload.name is not None:
            user.name = payload.name

        try:
            saved = self.repo.save(user)
        except IntegrityError:
            # rownolegla rejestracja z tym samym mailem
            self.repo.rollback()
            raise ValueError("Email already in use")
        return UserRead.model_validate(saved)

    def get_user(self, user_id: str) -> UserRead:
        user = self.repo.get_user(user_id)
        if not user:
            raise ValueError("User not found")
        return UserRead.model_validate(user)
