"""
Credential resolution tests: Fernet and legacy base64 secrets, missing and inactive integrations
"""
import base64

import pytest

from app.services.credentials import CredentialResolver, decode_secret, encrypt_token
from app.services.exceptions import CredentialNotFound, IntegrationInactive
from conftest import make_integration, make_store


class TestDecodeSecret:
    def test_fernet_round_trip(self):
        assert decode_secret(encrypt_token("ss-live-123")) == "ss-live-123"

    def test_legacy_base64(self):
        assert decode_secret(base64.b64encode(b"legacy-key").decode()) == "legacy-key"

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            decode_secret("not base64 !!")


class TestCredentialResolver:
    def test_resolves_active_integration(self, db_session, integration, store):
        assert CredentialResolver(db_session).resolve(store.id, "shipstation") == "ss-test-key"

    def test_resolves_legacy_base64_row(self, db_session, store):
        row = make_integration(db_session, store)
        row.api_key_encrypted = base64.b64encode(b"  old-key  ").decode()
        db_session.commit()
        assert CredentialResolver(db_session).resolve(store.id, "shipstation") == "old-key"

    def test_missing_integration(self, db_session, store):
        with pytest.raises(CredentialNotFound):
            CredentialResolver(db_session).resolve(store.id, "shipstation")

    def test_other_provider_type_not_used(self, db_session, integration, store):
        with pytest.raises(CredentialNotFound):
            CredentialResolver(db_session).resolve(store.id, "other-carrier")

    def test_empty_key(self, db_session, store):
        make_integration(db_session, store, api_key=None)
        with pytest.raises(CredentialNotFound):
            CredentialResolver(db_session).resolve(store.id, "shipstation")

    def test_blank_secret(self, db_session, store):
        make_integration(db_session, store, api_key="   ")
        with pytest.raises(CredentialNotFound):
            CredentialResolver(db_session).resolve(store.id, "shipstation")

    def test_undecodable_secret(self, db_session, store):
        integration = make_integration(db_session, store)
        integration.api_key_encrypted = "not base64 !!"
        db_session.commit()
        with pytest.raises(CredentialNotFound):
            CredentialResolver(db_session).resolve(store.id, "shipstation")

    def test_inactive_integration(self, db_session, store):
        make_integration(db_session, store, is_active=False)
        with pytest.raises(IntegrationInactive):
            CredentialResolver(db_session).resolve(store.id, "shipstation")

    def test_active_store_ids(self, db_session):
        active = make_store(db_session, "Active")
        inactive = make_store(db_session, "Inactive")
        keyless = make_store(db_session, "Keyless")
        make_integration(db_session, active)
        make_integration(db_session, inactive, is_active=False)
        make_integration(db_session, keyless, api_key=None)
        assert CredentialResolver(db_session).active_store_ids("shipstation") == [active.id]
