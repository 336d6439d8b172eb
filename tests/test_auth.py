import pytest

from assurkit_mcp.errors import AuthorizationError, SessionExpiredError


class TestLogin:
    async def test_login_caches_token_pair(self, api, backend, storage):
        api.store.clear()

        result = await api.auth.login("aman@example.com", "Secret@123")

        assert result == {"authenticated": True, "user": {"email": "aman@example.com", "role": "Viewer"}}
        assert storage.slots == {"access_token": "fresh-access", "refresh_token": "fresh-refresh"}
        assert backend.calls[-1] == ("POST", "/auth/login", None)

    async def test_bad_password_does_not_trigger_renewal(self, api, backend):
        with pytest.raises(AuthorizationError) as excinfo:
            await api.auth.login("aman@example.com", "wrong")

        assert excinfo.value.message == "Invalid email or password"
        assert backend.renewal_calls == 0
        assert api.store.current() == "stale-access"

    async def test_register_signs_in_as_viewer(self, api, backend):
        result = await api.auth.register("new@example.com", "Secret@123", "New User")

        assert result["authenticated"] is True
        assert api.store.current() == "fresh-access"

    async def test_login_after_termination_restores_session(self, api, backend, navigations):
        backend.renewal_status = 401
        with pytest.raises(SessionExpiredError):
            await api.call("GET", "api/companies")

        await api.auth.login("aman@example.com", "Secret@123")
        result = await api.call("GET", "api/companies")

        assert result["seen"] == "fresh-access"
        assert api.auth.status() == {"authenticated": True, "redirect": None}


class TestLogout:
    async def test_logout_clears_and_redirects(self, api, navigations, storage):
        result = api.auth.logout()

        assert result == {"authenticated": False, "redirect": "/login"}
        assert storage.slots == {}
        assert navigations == ["/login"]
        assert api.auth.status() == {"authenticated": False, "redirect": "/login"}

    async def test_me_requires_session(self, api, backend):
        api.auth.logout()

        with pytest.raises(SessionExpiredError):
            await api.auth.me()
        assert backend.calls == []

    async def test_me_goes_through_dispatcher(self, api, backend):
        result = await api.auth.me()

        assert result == {"path": "/api/me", "seen": "fresh-access"}
        assert backend.renewal_calls == 1
