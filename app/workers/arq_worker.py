from __future__ import annotations

import logging

from arq.connections import RedisSettings
from arq.cron import cron
from sqlalchemy import delete, or_, update

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.common import utcnow
from app.models.user import SignupOtp, User

logger = logging.getLogger(__name__)


async def purge_expired_signup_otps_job(ctx) -> dict:
    async with SessionLocal() as db:
        result = await db.execute(delete(SignupOtp).where(SignupOtp.otp_expires_at <= utcnow()))
        await db.commit()
    deleted = int(result.rowcount or 0)
    if deleted:
        logger.info("Purged %s expired signup OTP records", deleted)
    return {"otps_deleted": deleted}


async def clear_expired_account_tokens_job(ctx) -> dict:
    now = utcnow()
    async with SessionLocal() as db:
        reset = await db.execute(
            update(User)
            .where(User.password_reset_token_hash.is_not(None), User.password_reset_expires_at <= now)
            .values(password_reset_token_hash=None, password_reset_expires_at=None)
        )
        verification = await db.execute(
            update(User)
            .where(
                User.email_verification_token_hash.is_not(None),
                or_(User.email_verification_expires_at.is_(None), User.email_verification_expires_at <= now),
            )
            .values(email_verification_token_hash=None, email_verification_expires_at=None)
        )
        await db.commit()
    return {
        "reset_tokens_cleared": int(reset.rowcount or 0),
        "verification_tokens_cleared": int(verification.rowcount or 0),
    }


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    functions = [purge_expired_signup_otps_job, clear_expired_account_tokens_job]
    cron_jobs = [
        cron(purge_expired_signup_otps_job, minute=set(range(0, 60, 5))),
        cron(clear_expired_account_tokens_job, minute={0, 30}),
    ]
