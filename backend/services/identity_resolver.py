"""Stage 1: resolve one email to exactly one account on each side.

Email is the only join key between the two systems; ids from one side are never
looked up on the other.
"""
import logging
from typing import NamedTuple

from database import database
from models import SourceAccount, TargetAccount
from services.source_system import SourceSystemClient, SourceRequestError
from services.sync_errors import (
    InvalidSyncRequest,
    SourceAccountNotFound,
    TargetAccountNotFound,
)

logger = logging.getLogger(__name__)


class ResolvedIdentity(NamedTuple):
    source: SourceAccount
    target: TargetAccount


def validate_email(email) -> str:
    if not isinstance(email, str) or "@" not in email:
        raise InvalidSyncRequest("Valid user_email is required")
    return email.strip()


async def resolve_source_account(source: SourceSystemClient, email: str) -> SourceAccount:
    try:
        accounts = await source.find_accounts_by_email(email)
    except SourceRequestError as e:
        logger.error(f"Source account lookup failed for {email}: {e}")
        raise SourceAccountNotFound(details=str(e))

    if not accounts:
        raise SourceAccountNotFound(details=f"No source account with email {email}")
    if len(accounts) > 1:
        raise SourceAccountNotFound(details=f"More than one source account with email {email}")

    account = accounts[0]
    logger.info(f"Source account found: id={account.id} subscription={account.subscription}")
    return account


async def resolve_target_account(email: str) -> TargetAccount:
    db = database.get_db()
    try:
        profiles = await db.user_profiles.find(
            {"email": email},
            {"_id": 0, "user_id": 1, "email": 1, "name": 1}
        ).to_list(length=2)
    except Exception as e:
        logger.error(f"Target account lookup failed for {email}: {e}")
        raise TargetAccountNotFound(details=str(e))

    if not profiles:
        raise TargetAccountNotFound(details=f"No target account with email {email}")
    if len(profiles) > 1:
        raise TargetAccountNotFound(details=f"More than one target account with email {email}")

    account = TargetAccount.model_validate(profiles[0])
    logger.info(f"Target account found: user_id={account.user_id}")
    return account


async def resolve_identity(source: SourceSystemClient, email: str) -> ResolvedIdentity:
    """Both lookups must succeed before anything else runs."""
    email = validate_email(email)
    source_account = await resolve_source_account(source, email)
    target_account = await resolve_target_account(email)
    return ResolvedIdentity(source=source_account, target=target_account)
