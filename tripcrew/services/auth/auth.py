from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError
from fastapi import HTTPException, status

from tripcrew.models.user.user import User
from tripcrew.schemas.user.user import UserCreate
from tripcrew.core.security import hash_password, verify_password, create_access_token
from tripcrew.core.logger import logger


async def register_user(user_data: UserCreate, db: AsyncSession) -> User:
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar():
        raise HTTPException(status_code=400, detail="Email already registered")

    new_user = User(
        email=email,
        display_name=user_data.display_name or email.split("@")[0],
        hashed_password=hash_password(user_data.password),
        default_currency=user_data.default_currency,
    )

    db.add(new_user)
    try:
        await db.commit()
        await db.refresh(new_user)
    except IntegrityError:
        # Fallback in case of race condition between the query above and the insert
        await db.rollback()
        raise HTTPException(status_code=400, detail="Email already registered")

    logger.info(f"Registered user {new_user.id}")
    return new_user


async def login_user(email: str, password: str, db: AsyncSession) -> dict:
    result = await db.execute(select(User).where(User.email == email.lower()))
    user = result.scalar()

    if not user or not user.hashed_password or not verify_password(password, user.hashed_password):
        logger.warning(f"Failed login for {email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    token = create_access_token(data={"sub": str(user.id)})
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": user,
    }
