"""Token refresh scheduler: selection of expiring credentials and the refresh job."""
import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crosspost.config import Settings
from crosspost.integrations.errors import CredentialExpired, PlatformError
from crosspost.models.account import Account, AccountStatus, Platform
from crosspost.services.context import JobContext
from crosspost.services.credentials import apply_grant, mark_reconnect_required
from crosspost.services.retry import Job, JobOutcome
from crosspost.utils.helpers import as_utc

logger = structlog.get_logger(__name__)


def excluded_platforms(settings: Settings) -> frozenset[Platform]:
    known = {p.value for p in Platform}
    return frozenset(Platform(p) for p in settings.non_refreshable_platforms if p in known)


async def select_expiring_accounts(session: AsyncSession, settings: Settings, now: datetime) -> list[Account]:
    """Active accounts whose token expires within the refresh window.

    Already-expired tokens are included so they get one refresh attempt and
    are flipped to reconnect_required if it fails.
    """
    horizon = now + timedelta(hours=settings.TOKEN_REFRESH_WINDOW_HOURS)
    query = select(Account).where(
        Account.status == AccountStatus.ACTIVE,
        Account.token_expires_at.is_not(None),
        Account.token_expires_at <= horizon,
    )
    excluded = excluded_platforms(settings)
    if excluded:
        query = query.where(Account.platform.not_in(excluded))
    result = await session.execute(query.order_by(Account.token_expires_at))
    return list(result.scalars().all())


class TokenRefreshJob(Job):
    name = "token_refresh"

    def __init__(self, ctx: JobContext, account_id: uuid.UUID | str):
        super().__init__()
        self.ctx = ctx
        self.account_id = uuid.UUID(str(account_id))
        self.log_context["account_id"] = str(self.account_id)

    async def attempt(self, attempt: int) -> JobOutcome:
        async with self.ctx.session_factory() as session:
            account = await session.get(Account, self.account_id)
            if account is None:
                return JobOutcome.skipped("account not found")
            self.log_context["platform"] = account.platform.value

            if account.platform in excluded_platforms(self.ctx.settings):
                return JobOutcome.skipped(f"{account.platform.value} tokens are not refreshed")
            if account.status != AccountStatus.ACTIVE:
                return JobOutcome.skipped(f"account is {account.status.value}")

            now = self.ctx.now()
            try:
                adapter = self.ctx.registry.get(account.platform)
                grant = await adapter.refresh_access_token(account)
            except PlatformError as exc:
                if not account.token_expired(now, buffer_minutes=0):
                    raise
                mark_reconnect_required(account, exc.message)
                await session.commit()
                raise CredentialExpired(
                    f"Token for {account.display_name} expired at "
                    f"{as_utc(account.token_expires_at).isoformat()} and refresh failed: {exc.message}",
                    account.platform.value,
                ) from exc

            apply_grant(account, grant)
            await session.commit()

        return JobOutcome.succeeded(
            "token refreshed",
            expires_at=grant.expires_at.isoformat() if grant.expires_at else None,
            rotated_refresh_token=bool(grant.refresh_token),
        )
