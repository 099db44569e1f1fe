# ABOUTME: Unit tests for Viewer role and identity checks.
# ABOUTME: Anonymous callers are rejected by require_user; members by require_admin.

import pytest

from lendery.core.viewer import Role, Viewer
from lendery.errors import ForbiddenError


class TestViewer:
    """Tests for Viewer."""

    def test_anonymous(self) -> None:
        viewer = Viewer.anonymous()
        assert viewer.is_anonymous
        assert not viewer.is_admin
        with pytest.raises(ForbiddenError, match="Authentication required"):
            viewer.require_user()

    def test_member(self) -> None:
        viewer = Viewer.member("alice")
        assert viewer.require_user() == "alice"
        with pytest.raises(ForbiddenError):
            viewer.require_admin()

    def test_admin(self) -> None:
        viewer = Viewer.admin("root")
        assert viewer.is_admin
        assert viewer.role == Role.ADMIN
        assert viewer.require_admin() == "root"

    def test_admin_role_without_id_is_not_admin(self) -> None:
        assert not Viewer(user_id=None, role=Role.ADMIN).is_admin
