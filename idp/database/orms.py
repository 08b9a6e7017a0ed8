"""
Import every ORM module so Base.metadata knows all tables.
"""

import idp.user.schemas  # noqa
import idp.session.schemas  # noqa
import idp.oauth.schemas  # noqa
import idp.federation.schemas  # noqa
