import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from campusvibe import models, schemas, auth_utils
from campusvibe.auth_utils import create_access_token, get_current_user, get_db, require_operation

logger = logging.getLogger("campusvibe.routes.auth")

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(user: models.User) -> dict:
    access_token = create_access_token(data={"sub": str(user.id), "role": models.Role(user.role).value})
    return {"access_token": access_token, "token_type": "bearer", "user": user}


# Endpoint: POST /auth/register
# Description: Creates a student account and returns a bearer token.
@router.post("/register", response_model=schemas.TokenResponse)
def register(payload: schemas.UserRegister, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    logger.debug(f"Registration attempt for {email}")
    if auth_utils.get_user_by_email(db, email):
        logger.error(f"Email already registered: {email}")
        raise HTTPException(status_code=409, detail="Email already registered")

    user = models.User(
        email=email,
        name=payload.name or email.split("@")[0],
        mobile=payload.mobile or "",
        roll_number=payload.roll_number or "",
        password_hash=auth_utils.hash_password(payload.password),
        role=models.Role.student,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} registered as student")
    return _token_response(user)


# Endpoint: POST /auth/login
# Description: Authenticates with email and password and returns a bearer token.
@router.post("/login", response_model=schemas.TokenResponse)
def login(payload: schemas.UserLogin, db: Session = Depends(get_db)):
    logger.debug(f"Login attempt for {payload.email}")
    user = auth_utils.get_user_by_email(db, payload.email)
    if not user or not auth_utils.verify_password(payload.password, user.password_hash):
        logger.error(f"Invalid credentials for {payload.email}")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    logger.info(f"User {user.id} logged in")
    return _token_response(user)


@router.get("/me", response_model=schemas.User)
def read_me(current_user: models.User = Depends(get_current_user)):
    return current_user


# Endpoint: PUT /auth/users/{user_id}/role
# Description: Admin-only role change; this is how a student is upgraded to committee.
@router.put("/users/{user_id}/role", response_model=schemas.User)
def update_user_role(
    user_id: int,
    payload: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("promote_user")),
):
    user = auth_utils.get_user_by_id(db, user_id)
    if not user:
        logger.error(f"User {user_id} not found for role update")
        raise HTTPException(status_code=404, detail="User not found")
    user.role = payload.role
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {current_user.id} set role of user {user.id} to {payload.role.value}")
    return user
