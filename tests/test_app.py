# =============================================================================
# tests/test_app.py - Application wiring: health, pages, error envelope
# =============================================================================

class TestApp:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"message": "Healthy"}

    def test_index_serves_browser_pages(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "/static/app.js" in response.text

    def test_static_assets(self, client):
        response = client.get("/static/app.js")

        assert response.status_code == 200
        assert 'localStorage' in response.text

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    def test_malformed_json_is_400(self, client, fake_db):
        response = client.post(
            "/auth/login", content="{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Solicitud inválida"}

    def test_unexpected_error_is_generic_500(self, client, fake_db):
        fake_db.queue(RuntimeError("something odd"))

        response = client.get("/users")

        assert response.status_code == 500
        assert response.json() == {"error": "Error interno del servidor"}

    def test_openapi_lists_resources(self, client):
        paths = client.get("/openapi.json").json()["paths"]

        for path in ("/auth/login", "/posts/{post_id}", "/post-types/{post_type_id}", "/comments", "/users"):
            assert path in paths

    def test_openapi_documents_error_envelope(self, client):
        openapi = client.get("/openapi.json").json()

        responses = openapi["paths"]["/posts/{post_id}"]["get"]["responses"]
        schema = responses["404"]["content"]["application/json"]["schema"]
        assert schema == {"$ref": "#/components/schemas/APIError"}
        assert openapi["components"]["schemas"]["APIError"]["required"] == ["error"]
