import pytest

from portfolio_authz.models.role import PortfolioRole
from tests.conftest import MEMBER_ID, add_membership, auth_headers_for


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuthentication:
    """Tests for the upstream identity header"""

    def test_missing_header_is_unauthorized(self, client):
        response = client.get("/api/portfolios")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_non_bearer_scheme_is_unauthorized(self, client):
        response = client.get("/api/portfolios", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401


class TestCreatePortfolio:
    """Tests for POST /api/portfolios"""

    def test_creator_becomes_owner(self, client, db_session):
        headers = auth_headers_for("founder")
        response = client.post("/api/portfolios", headers=headers, json={"name": "Lake Houses"})

        assert response.status_code == 201
        portfolio_id = response.json()["id"]
        assert response.json()["name"] == "Lake Houses"

        permissions = client.get(f"/api/portfolios/{portfolio_id}/permissions", headers=headers)
        assert permissions.status_code == 200
        assert permissions.json()["role"] == "owner"

    def test_empty_name_rejected(self, client):
        response = client.post("/api/portfolios", headers=auth_headers_for("founder"), json={"name": ""})
        assert response.status_code == 422


class TestListPortfolios:
    def test_lists_memberships_with_roles(self, client, db_session, portfolio, other_portfolio, member_headers):
        add_membership(db_session, portfolio, MEMBER_ID, PortfolioRole.MEMBER)
        add_membership(db_session, other_portfolio, MEMBER_ID, PortfolioRole.VIEWER, accepted=False)

        response = client.get("/api/portfolios", headers=member_headers)

        assert response.status_code == 200
        by_portfolio = {p["portfolio_id"]: p for p in response.json()}
        assert by_portfolio[portfolio.id]["role"] == "member"
        assert by_portfolio[other_portfolio.id]["accepted_at"] is None


class TestGetPortfolio:
    def test_member_can_view(self, client, portfolio, viewer_membership, viewer_headers):
        response = client.get(f"/api/portfolios/{portfolio.id}", headers=viewer_headers)

        assert response.status_code == 200
        assert response.json()["name"] == "Test Portfolio"

    def test_other_portfolio_forbidden(self, client, portfolio, other_portfolio, owner_headers):
        response = client.get(f"/api/portfolios/{other_portfolio.id}", headers=owner_headers)
        assert response.status_code == 403


class TestUpdatePortfolio:
    """Tests for PUT /api/portfolios/{id}"""

    def test_admin_can_edit(self, client, portfolio, admin_membership, admin_headers):
        response = client.put(f"/api/portfolios/{portfolio.id}", headers=admin_headers, json={"name": "Renamed"})

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

    def test_member_cannot_edit(self, client, portfolio, member_membership, member_headers):
        response = client.put(f"/api/portfolios/{portfolio.id}", headers=member_headers, json={"name": "Renamed"})

        assert response.status_code == 403
        assert response.json()["errorCode"] == "INSUFFICIENT_PRIVILEGES"

    def test_viewer_cannot_edit(self, client, portfolio, viewer_membership, viewer_headers):
        response = client.put(f"/api/portfolios/{portfolio.id}", headers=viewer_headers, json={"name": "Renamed"})
        assert response.status_code == 403


class TestDeletePortfolio:
    """Tests for DELETE /api/portfolios/{id}"""

    def test_owner_deletes(self, client, portfolio, all_members, owner_headers, admin_headers):
        response = client.delete(f"/api/portfolios/{portfolio.id}", headers=owner_headers)

        assert response.status_code == 204
        gone = client.get(f"/api/portfolios/{portfolio.id}/permissions", headers=admin_headers)
        assert gone.status_code == 403

    @pytest.mark.parametrize("headers_fixture", ["admin_headers", "member_headers", "viewer_headers"])
    def test_non_owner_cannot_delete(self, client, request, portfolio, all_members, owner_headers, headers_fixture):
        headers = request.getfixturevalue(headers_fixture)

        response = client.delete(f"/api/portfolios/{portfolio.id}", headers=headers)

        assert response.status_code == 403
        assert response.json()["errorCode"] == "INSUFFICIENT_PRIVILEGES"
        assert client.get(f"/api/portfolios/{portfolio.id}", headers=owner_headers).status_code == 200


class TestPermissionContextEndpoint:
    """Tests for GET /api/portfolios/{id}/permissions"""

    def test_admin_context(self, client, portfolio, admin_membership, admin_headers):
        response = client.get(f"/api/portfolios/{portfolio.id}/permissions", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "admin"
        assert data["canInviteMembers"] is True
        assert data["canChangeRoles"] is False
        assert data["canManageBilling"] is False
        assert data["assignableRoles"] == ["member", "viewer"]
        assert data["hasFullPropertyAccess"] is True
        assert data["propertyAccess"] is None
        assert data["accessiblePropertyIds"] is None

    def test_restricted_member_context(self, client, db_session, portfolio, member_headers):
        add_membership(db_session, portfolio, MEMBER_ID, PortfolioRole.MEMBER, property_access={"p1": ["edit"]})

        data = client.get(f"/api/portfolios/{portfolio.id}/permissions", headers=member_headers).json()

        assert data["propertyAccess"] == {"p1": ["edit"]}
        assert data["hasFullPropertyAccess"] is False
        assert data["accessiblePropertyIds"] == ["p1"]

    def test_unknown_portfolio_forbidden(self, client, owner_headers):
        response = client.get("/api/portfolios/does-not-exist/permissions", headers=owner_headers)
        assert response.status_code == 403


class TestProperties:
    """Tests for property endpoints and property-level checks"""

    def test_member_adds_property(self, client, portfolio, member_membership, member_headers):
        response = client.post(
            f"/api/portfolios/{portfolio.id}/properties",
            headers=member_headers,
            json={"name": "Pine Cabin"},
        )

        assert response.status_code == 201
        assert response.json()["portfolio_id"] == portfolio.id

    def test_viewer_cannot_add_property(self, client, portfolio, viewer_membership, viewer_headers):
        response = client.post(
            f"/api/portfolios/{portfolio.id}/properties",
            headers=viewer_headers,
            json={"name": "Pine Cabin"},
        )
        assert response.status_code == 403

    def test_list_accessible_properties(self, client, db_session, portfolio, properties, member_headers):
        first, second = properties
        add_membership(db_session, portfolio, MEMBER_ID, PortfolioRole.MEMBER, property_access={second.id: ["view"]})

        data = client.get(f"/api/portfolios/{portfolio.id}/properties", headers=member_headers).json()

        assert data["hasFullPropertyAccess"] is False
        assert data["propertyIds"] == [second.id]

    def test_property_permissions_clamped_to_role(self, client, db_session, portfolio, properties, member_headers):
        first, _ = properties
        # Stored without validation; the resolver still clamps it
        add_membership(
            db_session,
            portfolio,
            MEMBER_ID,
            PortfolioRole.MEMBER,
            property_access={first.id: ["view", "edit", "manage", "delete"]},
        )

        response = client.get(
            f"/api/portfolios/{portfolio.id}/properties/{first.id}/permissions",
            headers=member_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["permissions"] == ["view", "edit"]
        assert data["canManage"] is False

    def test_foreign_property_not_found(self, client, portfolio, foreign_property, owner_headers):
        response = client.get(
            f"/api/portfolios/{portfolio.id}/properties/{foreign_property.id}",
            headers=owner_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Property not found"

    def test_foreign_property_permissions_not_found(self, client, portfolio, foreign_property, owner_headers):
        response = client.get(
            f"/api/portfolios/{portfolio.id}/properties/{foreign_property.id}/permissions",
            headers=owner_headers,
        )
        assert response.status_code == 404


class TestAuditLogEndpoint:
    """Tests for GET /api/portfolios/{id}/audit-log"""

    def test_owner_sees_chained_entries(self, client, portfolio, member_membership, owner_headers):
        client.patch(
            f"/api/portfolios/{portfolio.id}/members/{MEMBER_ID}/role",
            headers=owner_headers,
            json={"role": "viewer"},
        )
        client.delete(f"/api/portfolios/{portfolio.id}/members/{MEMBER_ID}", headers=owner_headers)

        response = client.get(f"/api/portfolios/{portfolio.id}/audit-log", headers=owner_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["chain_valid"] is True
        assert [e["action"] for e in data["entries"]] == ["role_change", "access_revoked"]
        assert [e["sequence"] for e in data["entries"]] == [1, 2]
        assert data["entries"][0]["old_value"] == {"role": "member"}
        assert data["entries"][0]["new_value"] == {"role": "viewer"}

    def test_admin_can_view(self, client, portfolio, admin_membership, admin_headers):
        response = client.get(f"/api/portfolios/{portfolio.id}/audit-log", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["entries"] == []

    def test_member_cannot_view(self, client, portfolio, member_membership, member_headers):
        response = client.get(f"/api/portfolios/{portfolio.id}/audit-log", headers=member_headers)

        assert response.status_code == 403
        assert response.json()["errorCode"] == "INSUFFICIENT_PRIVILEGES"
