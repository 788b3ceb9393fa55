"""Credential store writes: token grants, reconnect flags, pre-flight checks."""
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from crosspost.config import Settings
from crosspost.integrations.base import PlatformAdapter, TokenGrant
from crosspost.integrations.errors import CredentialExpired, PermanentApiError, PlatformError, TransientApiError
from crosspost.models.account import Account, AccountStatus

logger = structlog.get_logger(__name__)


def apply_grant(account: Account, grant: TokenGrant) -> None:
    """Store a refreshed token; the old refresh token survives unless a new one came back."""
    account.access_token = grant.access_token
    if grant.refresh_token:
        account.refresh_token = grant.refresh_token
    account.token_expires_at = grant.expires_at
    account.status = AccountStatus.ACTIVE


def mark_reconnect_required(account: Account, reason: str) -> None:
    account.status = AccountStatus.RECONNECT_REQUIRED
    account.meta = {**(account.meta or {}), "reconnect_reason": reason}
    logger.warning(
        "account_reconnect_required",
        account_id=str(account.id),
        platform=account.platform.value,
        reason=reason,
    )


def flag_if_revoked(account: Account | None, error: BaseException) -> bool:
    """Mark the account when the platform rejected its credentials outright."""
    if account is None or not isinstance(error, PermanentApiError) or not error.auth_rejected:
        return False
    mark_reconnect_required(account, error.message)
    return True


async def ensure_usable(
    session: AsyncSession,
    account: Account,
    adapter: PlatformAdapter,
    settings: Settings,
    now: datetime,
) -> None:
    """Fail fast on disconnected accounts; refresh an expiring token once, inline.

    Transient refresh errors propagate for the retry policy. Other refresh
    errors disconnect the account only once the token is actually past expiry.
    """
    if account.status == AccountStatus.RECONNECT_REQUIRED:
        raise CredentialExpired(
            f"Account {account.display_name} must be reconnected before it can be used",
            account.platform.value,
        )

    if not account.token_expired(now, settings.TOKEN_EXPIRY_BUFFER_MINUTES):
        return

    try:
        grant = await adapter.refresh_access_token(account)
    except TransientApiError:
        raise
    except PlatformError as exc:
        if not account.token_expired(now, buffer_minutes=0):
            # Still valid for a few minutes; use it and leave the account alone
            logger.warning(
                "account_token_refresh_deferred",
                account_id=str(account.id),
                platform=account.platform.value,
                error=exc.message,
            )
            return
        mark_reconnect_required(account, exc.message)
        await session.commit()
        raise CredentialExpired(
            f"Access token for {account.display_name} expired and could not be refreshed: {exc.message}",
            account.platform.value,
        ) from exc

    apply_grant(account, grant)
    await session.commit()
    logger.info("account_token_refreshed_inline", account_id=str(account.id), platform=account.platform.value)
