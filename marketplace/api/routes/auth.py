"""Account endpoints: credentials, password reset, OTP and QR login."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from marketplace.api.deps import get_container, get_current_user
from marketplace.api.responses import envelope
from marketplace.api.schemas import (
    EmailRequest,
    LoginRequest,
    QRScanRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyOtpRequest,
)
from marketplace.auth.service import public_user
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, container: ServiceContainer = Depends(get_container)):
    result = container.auth.register(body.email, body.password, body.name, body.role)
    return envelope(result, status=201)


@router.post("/login")
def login(body: LoginRequest, container: ServiceContainer = Depends(get_container)):
    return envelope(container.auth.login(body.email, body.password))


@router.post("/refresh")
def refresh(body: RefreshRequest, container: ServiceContainer = Depends(get_container)):
    return envelope(container.auth.refresh(body.refreshToken))


@router.post("/logout")
def logout(
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.auth.logout()
    return envelope({"message": "Logged out"})


@router.post("/forget-password")
def forget_password(body: EmailRequest, container: ServiceContainer = Depends(get_container)):
    container.auth.forget_password(body.email)
    return envelope({"message": "If the email exists, a reset link has been sent"})


@router.post("/reset-password")
def reset_password(
    body: ResetPasswordRequest, container: ServiceContainer = Depends(get_container)
):
    container.auth.reset_password(body.token, body.password)
    return envelope({"message": "Password has been reset"})


@router.post("/otp/request")
def request_otp(body: EmailRequest, container: ServiceContainer = Depends(get_container)):
    container.auth.request_otp(body.email)
    return envelope({"message": "If the email exists, an OTP has been sent"})


@router.post("/otp/verify")
def verify_otp(body: VerifyOtpRequest, container: ServiceContainer = Depends(get_container)):
    return envelope(container.auth.verify_otp(body.email, body.otp))


@router.get("/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return envelope(public_user(user))


@router.post("/qr/generate", status_code=status.HTTP_201_CREATED)
def generate_qr_session(container: ServiceContainer = Depends(get_container)):
    """Start a QR login. The QR token only travels inside the rendered code."""
    session = container.qr_sessions.generate_session()
    return envelope(
        {
            "sessionId": session["sessionId"],
            "qrCode": session["qrCode"],
            "expiresAt": session["expiresAt"],
            "expiresInSeconds": session["expiresInSeconds"],
        },
        status=201,
    )


@router.get("/qr/status/{session_id}")
def qr_session_status(session_id: str, container: ServiceContainer = Depends(get_container)):
    return envelope(container.qr_sessions.poll_status(session_id))


@router.post("/qr/scan")
def scan_qr_session(body: QRScanRequest, container: ServiceContainer = Depends(get_container)):
    container.qr_sessions.scan(body.sessionId, body.qrToken)
    return envelope({"message": "QR code scanned"})


@router.post("/qr/authenticate")
def authenticate_qr_session(
    body: QRScanRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Approve a desktop login from a device where the user is signed in."""
    container.qr_sessions.authenticate(body.sessionId, body.qrToken, str(user["_id"]))
    return envelope({"message": "QR session authenticated"})
