from portfolio_authz import config
from portfolio_authz.config import Settings
from portfolio_authz.services.audit_service import PermissionAuditService
from portfolio_authz.services.portfolio_member_service import PortfolioMemberService


class TestSettings:
    """Tests for environment-driven settings"""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.AUDIT_LOG_ENABLED is True
        assert settings.INVITATION_EXPIRE_DAYS == 7
        assert settings.cors_origins_list == []

    def test_cors_origins_parsed_from_comma_separated_string(self):
        settings = Settings(_env_file=None, CORS_ORIGINS=" https://app.example.com, ,http://localhost:3000,")

        assert settings.cors_origins_list == ["https://app.example.com", "http://localhost:3000"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "https://one.example.com,https://two.example.com")
        monkeypatch.setenv("CORS_ALLOW_CREDENTIALS", "false")
        monkeypatch.setenv("INVITATION_EXPIRE_DAYS", "3")

        settings = Settings(_env_file=None)

        assert settings.cors_origins_list == ["https://one.example.com", "https://two.example.com"]
        assert settings.CORS_ALLOW_CREDENTIALS is False
        assert settings.INVITATION_EXPIRE_DAYS == 3


class TestAuditToggle:
    def test_enabled_uses_database_recorder(self, db_session, monkeypatch):
        monkeypatch.setattr(config.settings, "AUDIT_LOG_ENABLED", True)
        assert isinstance(PortfolioMemberService(db_session).audit, PermissionAuditService)

    def test_disabled_skips_recording(self, db_session, monkeypatch):
        monkeypatch.setattr(config.settings, "AUDIT_LOG_ENABLED", False)
        assert PortfolioMemberService(db_session).audit is None
