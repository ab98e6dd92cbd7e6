"""
手机验证码服务

响应体和状态码与前端既有约定保持一致（error / remainingTime / expiresIn / alreadyVerified）。
"""

import math
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

import structlog

from wonderstars.core.clock import ensure_aware, utcnow
from wonderstars.core.config import settings
from wonderstars.integrations.isms_client import IsmsClient
from wonderstars.models.otp import OtpOutcome
from wonderstars.repositories.phone_verification_repository import PhoneVerificationRepository

logger = structlog.get_logger()

OTP_PATTERN = re.compile(r"^\d{6}$")


def generate_otp() -> str:
    """6位数字验证码"""
    return str(100000 + secrets.randbelow(900000))


class OtpService:
    """手机验证码发送与校验"""

    def __init__(self, verification_repo: PhoneVerificationRepository, sms_client: Optional[IsmsClient] = None):
        self.verification_repo = verification_repo
        self.sms_client = sms_client or IsmsClient()

    def _invalid_phone(self, phone: Optional[str]) -> bool:
        return not phone or not phone.startswith(settings.otp_phone_prefix)

    async def send_otp(self, phone: Optional[str], now: Optional[datetime] = None) -> OtpOutcome:
        """发送验证码，每个号码每小时最多发送 otp_max_sends_per_hour 次"""
        if self._invalid_phone(phone):
            return OtpOutcome(
                status_code=400,
                body={"error": f"Invalid phone number. Must start with {settings.otp_phone_prefix}"}
            )

        now = ensure_aware(now) or utcnow()
        record = await self.verification_repo.get(phone)

        sent_count = 0
        last_sent = ensure_aware(record.last_sent_at) if record else None
        if last_sent:
            hours_since_last_send = (now - last_sent).total_seconds() / 3600
            if hours_since_last_send < 1:
                sent_count = record.sent_count or 0
                if sent_count >= settings.otp_max_sends_per_hour:
                    logger.warning("验证码发送超限", phone=phone, sent_count=sent_count)
                    return OtpOutcome(
                        status_code=429,
                        body={
                            "error": (
                                f"Rate limit exceeded. Maximum {settings.otp_max_sends_per_hour} SMS per hour. "
                                "Please try again later."
                            ),
                            "remainingTime": math.ceil((1 - hours_since_last_send) * 60)
                        }
                    )

        code = generate_otp()
        expires_at = now + timedelta(seconds=settings.otp_expiry_seconds)
        minutes = settings.otp_expiry_seconds // 60
        message = (
            f"Your WonderStars verification code is: {code}. "
            f"Valid for {minutes} minutes. Do not share this code."
        )

        result = await self.sms_client.send_sms(phone, message)
        if not result.success:
            return OtpOutcome(status_code=500, body={"error": result.error or "Failed to send SMS"})

        await self.verification_repo.upsert(phone, {
            "verification_code": code,
            "expires_at": expires_at,
            "sent_count": sent_count + 1,
            "last_sent_at": now,
            "verified": False,
            "verified_at": None,
        })
        logger.info("验证码已发送", phone=phone, sent_count=sent_count + 1)

        return OtpOutcome(
            status_code=200,
            body={
                "success": True,
                "message": "Verification code sent successfully",
                "expiresIn": settings.otp_expiry_seconds
            }
        )

    async def verify_otp(
        self,
        phone: Optional[str],
        code: Optional[str],
        now: Optional[datetime] = None
    ) -> OtpOutcome:
        """校验验证码"""
        if not phone or not code:
            return OtpOutcome(
                status_code=400,
                body={"error": "Phone number and verification code are required"}
            )

        if self._invalid_phone(phone):
            return OtpOutcome(
                status_code=400,
                body={"error": f"Invalid phone number. Must start with {settings.otp_phone_prefix}"}
            )

        if not OTP_PATTERN.match(code):
            return OtpOutcome(
                status_code=400,
                body={"error": "Invalid verification code format. Must be 6 digits"}
            )

        now = ensure_aware(now) or utcnow()
        record = await self.verification_repo.get(phone)

        if record is None:
            logger.info("没有验证记录", phone=phone)
            return OtpOutcome(
                status_code=404,
                body={"error": "No verification code found. Please request a new code"}
            )

        if record.verified:
            return OtpOutcome(
                status_code=200,
                body={
                    "success": True,
                    "message": "Phone number already verified",
                    "alreadyVerified": True
                }
            )

        if not record.verification_code:
            return OtpOutcome(
                status_code=404,
                body={"error": "No verification code found. Please request a new code"}
            )

        expires_at = ensure_aware(record.expires_at)
        if expires_at is None or now > expires_at:
            await self.verification_repo.update(phone, {"verification_code": None, "expires_at": None})
            return OtpOutcome(
                status_code=400,
                body={"error": "Verification code expired. Please request a new code"}
            )

        if record.verification_code != code:
            logger.info("验证码错误", phone=phone)
            return OtpOutcome(
                status_code=400,
                body={"error": "Invalid verification code. Please try again"}
            )

        await self.verification_repo.update(phone, {
            "verified": True,
            "verified_at": now,
            "verification_code": None,
            "expires_at": None,
        })
        logger.info("手机号验证成功", phone=phone)

        return OtpOutcome(
            status_code=200,
            body={"success": True, "message": "Phone number verified successfully"}
        )
