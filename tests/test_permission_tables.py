import pytest

from portfolio_authz.core import permission_tables as tables
from portfolio_authz.core.roles import get_role_rank
from portfolio_authz.models.role import PortfolioAction, PortfolioRole, PropertyPermission

ALL_PERMISSIONS = set(PropertyPermission)


class TestRoleDefaultPermissions:
    """Tests for the property-permission ceiling of each role"""

    def test_owner_and_admin_hold_everything(self):
        assert tables.get_role_default_permissions("owner") == ALL_PERMISSIONS
        assert tables.get_role_default_permissions("admin") == ALL_PERMISSIONS

    def test_member_can_view_and_edit(self):
        assert tables.get_role_default_permissions("member") == {
            PropertyPermission.VIEW,
            PropertyPermission.EDIT,
        }

    def test_viewer_can_only_view(self):
        assert tables.get_role_default_permissions("viewer") == {PropertyPermission.VIEW}

    @pytest.mark.parametrize("higher", list(PortfolioRole))
    @pytest.mark.parametrize("lower", list(PortfolioRole))
    def test_defaults_are_monotone_in_rank(self, higher, lower):
        if get_role_rank(higher) >= get_role_rank(lower):
            assert tables.get_role_default_permissions(lower) <= tables.get_role_default_permissions(higher)

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            tables.ROLE_DEFAULT_PERMISSIONS[PortfolioRole.VIEWER] = frozenset(PropertyPermission)


class TestPortfolioActions:
    """Tests for role -> portfolio action table"""

    @pytest.mark.parametrize(
        "action",
        [
            PortfolioAction.DELETE_PORTFOLIO,
            PortfolioAction.CHANGE_MEMBER_ROLES,
            PortfolioAction.MANAGE_BILLING,
        ],
    )
    def test_owner_only_actions(self, action):
        assert tables.can_perform_portfolio_action("owner", action)
        assert not tables.can_perform_portfolio_action("admin", action)
        assert not tables.can_perform_portfolio_action("member", action)
        assert not tables.can_perform_portfolio_action("viewer", action)

    def test_owner_can_do_everything(self):
        assert tables.get_allowed_portfolio_actions("owner") == set(PortfolioAction)

    def test_admin_manages_members_but_not_roles(self):
        assert tables.can_invite_members("admin")
        assert tables.can_remove_members("admin")
        assert tables.can_edit_portfolio("admin")
        assert tables.can_view_audit_log("admin")
        assert not tables.can_change_member_roles("admin")

    def test_member_actions(self):
        assert tables.get_allowed_portfolio_actions("member") == {
            PortfolioAction.VIEW_PORTFOLIO,
            PortfolioAction.ADD_PROPERTIES,
        }

    def test_viewer_actions(self):
        assert tables.get_allowed_portfolio_actions("viewer") == {PortfolioAction.VIEW_PORTFOLIO}
        assert not tables.can_add_properties("viewer")

    def test_action_accepts_string_names(self):
        assert tables.can_perform_portfolio_action("member", "add_properties")

    def test_unknown_action_raises(self):
        with pytest.raises(ValueError):
            tables.can_perform_portfolio_action("owner", "launch_rockets")

    @pytest.mark.parametrize("action", list(PortfolioAction))
    def test_everyone_who_can_act_can_view(self, action):
        for role in PortfolioRole:
            if tables.can_perform_portfolio_action(role, action):
                assert tables.can_view_portfolio(role)


class TestRoleBands:
    @pytest.mark.parametrize(
        "role,view,edit,admin",
        [
            ("owner", True, True, True),
            ("admin", True, True, True),
            ("member", True, True, False),
            ("viewer", True, False, False),
        ],
    )
    def test_bands(self, role, view, edit, admin):
        assert tables.can_view(role) is view
        assert tables.can_edit(role) is edit
        assert tables.can_admin(role) is admin


class TestOptions:
    def test_role_options_follow_hierarchy(self):
        assert [option.value for option in tables.ROLE_OPTIONS] == [
            PortfolioRole.OWNER,
            PortfolioRole.ADMIN,
            PortfolioRole.MEMBER,
            PortfolioRole.VIEWER,
        ]
        assert tables.ROLE_OPTIONS[1].label == "Administrator"

    def test_permission_options_cover_every_permission(self):
        assert [option.value for option in tables.PERMISSION_OPTIONS] == list(PropertyPermission)
        assert all(option.description for option in tables.PERMISSION_OPTIONS)
