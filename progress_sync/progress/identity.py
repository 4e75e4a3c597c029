"""Effective user id resolution from an identity provider snapshot."""

import logging

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


logger = logging.getLogger(__name__)


class IdentitySnapshot(BaseModel):
    """What the identity collaborator knows about the signed-in user.

    Different sign-in flows fill different fields; ``api_user_id`` is the id
    issued by our own user API and is the only one guaranteed to match
    progress records.
    """

    id: str | None = None
    is_temporary_id: bool = False
    api_user_id: str | None = None
    api_user_alt_id: str | None = None
    sub: str | None = None
    local_account_id: str | None = None
    email: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def resolve_effective_user_id(snapshot: IdentitySnapshot | None) -> str | None:
    """Pick the user id progress records are stored under.

    Priority:
        1. ``api_user_id`` (internal user API id)
        2. ``api_user_alt_id`` (internal user API, legacy ``id`` field)
        3. ``id`` when it is not a temporary provider id
        4. ``id`` even if temporary (logged; the API may reject it)
        5. ``sub``
        6. ``local_account_id``

    Email is never used as an id: two accounts sharing no real key could be
    cross-referenced through it. A snapshot with only an email resolves to None.
    """
    if snapshot is None:
        return None

    if snapshot.api_user_id:
        return snapshot.api_user_id
    if snapshot.api_user_alt_id:
        return snapshot.api_user_alt_id
    if snapshot.id and not snapshot.is_temporary_id:
        return snapshot.id
    if snapshot.id:
        logger.warning(f"Using temporary provider id {snapshot.id} - progress API may reject it")
        return snapshot.id

    fallback = snapshot.sub or snapshot.local_account_id
    if fallback:
        logger.warning(f"Using fallback provider id {fallback}")
        return fallback

    if snapshot.email:
        logger.error("Identity has only an email; refusing to use it as a user id")
    return None
