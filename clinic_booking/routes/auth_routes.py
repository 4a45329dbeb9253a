from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_booking.auth import jwt_handler
from clinic_booking.auth.dependencies import get_current_user
from clinic_booking.core import config
from clinic_booking.models.user import User
from clinic_booking.routes.common import get_db

router = APIRouter(tags=['auth'])


class TokenRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        return normalized


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


@router.post('/token', response_model=TokenResponse)
def issue_token(data: TokenRequest, db: Session = Depends(get_db)):
    """Development sign-in for known staff; production tokens come from the identity provider."""
    if config.APP_ENV.lower() == 'production':
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Not found.')

    user = db.query(User).filter(User.email == data.email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='User not found')

    token = jwt_handler.create_access_token(
        subject=user.email,
        role=user.role,
        practice_id=user.practice_id,
    )
    return TokenResponse(access_token=token)


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return {'email': current_user.email, 'role': current_user.role, 'practice_id': current_user.practice_id}
