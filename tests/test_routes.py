"""
Tests for the token and connection endpoints, with the store and token
manager patched out.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth.dependencies import db_session, get_current_user_id
from connectors.errors import ConnectionNotFound, RefreshError, StoreError
from connectors.routes import get_oauth_connector, oauth_router, router

from tests.conftest import CONNECTION_ID, USER_ID, make_session


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def client(session):
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.include_router(oauth_router)

    async def _session():
        yield session

    app.dependency_overrides[db_session] = _session
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    app.dependency_overrides[get_oauth_connector] = lambda: MagicMock()
    return TestClient(app)


class TestRefreshToken:
    def test_success(self, client, session):
        refresh = AsyncMock(return_value="ya29.new")
        with patch("connectors.routes.refresh_connection", new=refresh):
            response = client.post(
                "/api/refresh-token",
                json={"connectionId": str(CONNECTION_ID), "refreshToken": "1//r"},
            )
        assert response.status_code == 200
        assert response.json() == {"message": "Access token refreshed", "result": "ya29.new"}
        assert refresh.await_args.kwargs["user_id"] == USER_ID
        assert refresh.await_args.kwargs["refresh_token"] == "1//r"
        session.commit.assert_awaited_once()

    def test_provider_rejection_asks_for_reconnect(self, client):
        with patch(
            "connectors.routes.refresh_connection",
            new=AsyncMock(side_effect=RefreshError("invalid_grant")),
        ):
            response = client.post("/api/refresh-token", json={"connectionId": str(CONNECTION_ID)})
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "reconnect": True}

    def test_unknown_connection(self, client):
        with patch(
            "connectors.routes.refresh_connection",
            new=AsyncMock(side_effect=ConnectionNotFound(CONNECTION_ID)),
        ):
            response = client.post("/api/refresh-token", json={"connectionId": str(CONNECTION_ID)})
        assert response.status_code == 404

    def test_save_failure(self, client):
        with patch(
            "connectors.routes.refresh_connection",
            new=AsyncMock(side_effect=StoreError("Could not update connection")),
        ):
            response = client.post("/api/refresh-token", json={"connectionId": str(CONNECTION_ID)})
        assert response.status_code == 500
        assert "reconnect" not in response.json()


class TestUpdateSheetTab:
    @pytest.mark.parametrize(
        "body",
        [{}, {"connectionId": str(CONNECTION_ID)}, {"sheetTab": "Tab2"},
         {"connectionId": str(CONNECTION_ID), "sheetTab": "  "}],
    )
    def test_missing_fields(self, client, body):
        response = client.post("/api/update-sheet-tab", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_success(self, client):
        with patch("connectors.routes.get_connection", new=AsyncMock()), \
                patch("connectors.routes.update_connection", new=AsyncMock()) as update:
            response = client.post(
                "/api/update-sheet-tab",
                json={"connectionId": str(CONNECTION_ID), "sheetTab": "Tab2"},
            )
        assert response.json() == {"success": True}
        assert update.await_args.args[1].sheet_tab == "Tab2"

    def test_foreign_connection(self, client):
        with patch(
            "connectors.routes.get_connection",
            new=AsyncMock(side_effect=ConnectionNotFound(CONNECTION_ID)),
        ), patch("connectors.routes.update_connection", new=AsyncMock()) as update:
            response = client.post(
                "/api/update-sheet-tab",
                json={"connectionId": str(CONNECTION_ID), "sheetTab": "Tab2"},
            )
        assert response.status_code == 404
        update.assert_not_awaited()

    def test_tab_name_with_separator(self, client):
        with patch("connectors.routes.get_connection", new=AsyncMock()):
            response = client.post(
                "/api/update-sheet-tab",
                json={"connectionId": str(CONNECTION_ID), "sheetTab": "Sales, Q1"},
            )
        assert response.status_code == 400
        assert "may not contain" in response.json()["error"]

    def test_store_failure(self, client):
        with patch("connectors.routes.get_connection", new=AsyncMock()), patch(
            "connectors.routes.update_connection",
            new=AsyncMock(side_effect=StoreError("Could not update connection")),
        ):
            response = client.post(
                "/api/update-sheet-tab",
                json={"connectionId": str(CONNECTION_ID), "sheetTab": "Tab2"},
            )
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to update sheet tab"}


class TestConnections:
    def test_delete_is_idempotent(self, client):
        with patch("connectors.routes.delete_connection", new=AsyncMock(side_effect=[True, False])):
            first = client.delete(f"/api/v1/connections/{CONNECTION_ID}")
            second = client.delete(f"/api/v1/connections/{CONNECTION_ID}")
        assert first.status_code == second.status_code == 200
        assert first.json()["deleted"] is True
        assert second.json()["deleted"] is False

    def test_create_accepts_newline_separated_keys(self, client):
        create = AsyncMock(side_effect=StoreError("stop"))
        with patch("connectors.routes.create_connection", new=create):
            client.post(
                "/api/v1/connections",
                json={"appId": 3, "connectionName": "Airtable", "connectionKey": "api_key=abc\nbase=xyz"},
            )
        assert create.await_args.args[3] == ["api_key=abc", "base=xyz"]

    def test_authorize_returns_consent_url(self, client):
        app = client.app
        connector = MagicMock()
        connector.provider_name = "google_drive"
        connector.get_auth_url = MagicMock(side_effect=lambda state: f"https://consent?state={state}")
        app.dependency_overrides[get_oauth_connector] = lambda: connector

        response = client.post(
            "/api/v1/oauth/authorize",
            json={"modelId": 42, "appId": 3, "name": "Sheets analyst"},
        )
        assert response.status_code == 200
        assert response.json()["provider"] == "google_drive"
        assert response.json()["auth_url"].startswith("https://consent?state=")
