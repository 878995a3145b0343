# tokenline/app/crud/crud_user.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
from app.crud.base import CRUDBase
from app.db.session import bounded
from app.models.user import User
from app.schemas.user import UserCreate
from app.core.security import get_password_hash
from app.crud import crud_refresh_token
from loguru import logger


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CRUDUser(CRUDBase[User, UserCreate]):
    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        stmt = select(User).filter(User.email == normalize_email(email))
        result = await bounded(db, db.execute(stmt), operation="users.get_by_email")
        return result.scalars().first()

    async def _insert(self, db: AsyncSession, db_obj: User, *, operation: str) -> User:
        # IntegrityError (email já usado) sobe para o chamador
        db.add(db_obj)
        await bounded(db, db.commit(), operation=operation)
        await bounded(db, db.refresh(db_obj), operation=operation)
        return db_obj

    async def create(self, db: AsyncSession, *, obj_in: UserCreate) -> User:
        db_obj = User(
            email=normalize_email(obj_in.email),
            hashed_password=get_password_hash(obj_in.password),
            is_active=True,
        )
        return await self._insert(db, db_obj, operation="users.create")

    async def create_federated(self, db: AsyncSession, *, email: str, provider: str) -> User:
        """Cria uma conta sem senha para um login OAuth."""
        db_obj = User(
            email=normalize_email(email),
            hashed_password=None,
            auth_provider=provider,
            is_active=True,
        )
        return await self._insert(db, db_obj, operation="users.create_federated")

    async def soft_delete(self, db: AsyncSession, *, user: User) -> User:
        """Desativa a conta e revoga (sem apagar) todos os seus refresh tokens."""
        user.is_active = False
        user.deleted_at = crud_refresh_token.utcnow_naive()
        db.add(user)
        revoked_count = await crud_refresh_token.revoke_all_for_user(db, user_id=user.id, commit=False)
        await bounded(db, db.commit(), operation="users.soft_delete")
        await bounded(db, db.refresh(user), operation="users.soft_delete")
        logger.info(f"Conta ID {user.id} desativada; {revoked_count} refresh token(s) revogados.")
        return user

user = CRUDUser(User)
