"""Database models.

Importing this package registers every table with ``Base.metadata``.
"""

from .base import Base  # noqa: F401
from .user import UserModel  # noqa: F401
from .invite_code import InviteCodeModel  # noqa: F401
from .invite_code_usage import InviteCodeUsageModel  # noqa: F401
