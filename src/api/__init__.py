"""HTTP surface for snapshots."""

from api.server import Unauthorized, check_admin_secret, create_app

__all__ = ["Unauthorized", "check_admin_secret", "create_app"]
