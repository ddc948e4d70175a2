"""HTTP layer for agencyauth.

Classes:
    :class:`AuthAPI` -- raw login/refresh/logout calls, no interception.
    :class:`AuthPipeline` -- resource requests with proactive refresh and a
    single refresh-and-retry after ``401``.

Both wrap a shared :class:`httpx.AsyncClient` created by
:func:`~agencyauth.auth.session.open_session`.
"""

from agencyauth.client.auth_api import AuthAPI
from agencyauth.client.pipeline import AuthPipeline

__all__ = ["AuthAPI", "AuthPipeline"]
