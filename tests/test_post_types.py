# =============================================================================
# tests/test_post_types.py - /post-types endpoint tests
# =============================================================================

import psycopg2.errors
import pytest

TECH = {"id": 3, "name": "Tech", "description": None}


class TestPostTypeCrud:

    def test_list_sorted_by_name(self, client, fake_db):
        fake_db.queue([TECH])

        response = client.get("/post-types")

        assert response.status_code == 200
        assert response.json() == [TECH]
        assert fake_db.queries[0].endswith("ORDER BY name")

    def test_create_trims_and_blanks_description(self, client, fake_db):
        fake_db.queue(TECH)

        response = client.post("/post-types", json={"name": "  Tech ", "description": "   "})

        assert response.status_code == 200
        assert fake_db.calls[0][1] == {"name": "Tech", "description": None}

    @pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "   "}])
    def test_create_requires_name(self, client, fake_db, body):
        response = client.post("/post-types", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "El nombre es requerido"}

    def test_duplicate_name_on_create(self, client, fake_db):
        fake_db.queue(psycopg2.errors.UniqueViolation("dup"))

        response = client.post("/post-types", json={"name": "Tech"})

        assert response.status_code == 400
        assert response.json() == {"error": "Ya existe un tipo con ese nombre"}

    def test_get_missing_is_404(self, client, fake_db):
        fake_db.queue(None)

        response = client.get("/post-types/77")

        assert response.status_code == 404
        assert response.json() == {"error": "Tipo de post no encontrado"}

    def test_update(self, client, fake_db):
        fake_db.queue({"id": 3, "name": "Science", "description": "Lab notes"})

        response = client.put("/post-types/3", json={"name": "Science", "description": "Lab notes"})

        assert response.status_code == 200
        assert response.json()["name"] == "Science"
        assert fake_db.calls[0][1] == {"id": 3, "name": "Science", "description": "Lab notes"}

    def test_update_missing_is_404(self, client, fake_db):
        fake_db.queue(None)

        response = client.put("/post-types/77", json={"name": "Science"})

        assert response.status_code == 404

    def test_duplicate_name_on_update(self, client, fake_db):
        fake_db.queue(psycopg2.errors.UniqueViolation("dup"))

        response = client.put("/post-types/3", json={"name": "Other"})

        assert response.status_code == 400
        assert response.json() == {"error": "Ya existe un tipo con ese nombre"}


class TestDeletePostType:

    def test_referenced_type_is_kept(self, client, fake_db):
        fake_db.queue({"id": 3}, {"post_count": 2})

        response = client.delete("/post-types/3")

        assert response.status_code == 400
        assert response.json() == {"error": "No se puede eliminar. Hay 2 posts usando este tipo."}
        assert not any(q.startswith("DELETE") for q in fake_db.queries)
        assert fake_db.rollbacks == 1

    def test_unreferenced_type_is_deleted(self, client, fake_db):
        fake_db.queue({"id": 3}, {"post_count": 0}, None)

        response = client.delete("/post-types/3")

        assert response.status_code == 200
        assert response.json() == {"message": "Tipo eliminado correctamente"}
        assert "FOR UPDATE" in fake_db.queries[0]
        assert fake_db.queries[2] == "DELETE FROM post_types WHERE id=%(id)s"
        assert fake_db.commits == 1

    def test_missing_type_is_404(self, client, fake_db):
        fake_db.queue(None)

        response = client.delete("/post-types/3")

        assert response.status_code == 404

    def test_foreign_key_backstop(self, client, fake_db):
        fake_db.queue({"id": 3}, {"post_count": 0}, psycopg2.errors.ForeignKeyViolation("fk"))

        response = client.delete("/post-types/3")

        assert response.status_code == 400
        assert "No se puede eliminar" in response.json()["error"]

    def test_mutations_need_no_identity(self, client, fake_db):
        fake_db.queue(TECH, {**TECH, "name": "Ciencia"}, {"id": 3}, {"post_count": 0}, None)

        assert client.post("/post-types", json={"name": "Tech"}).status_code == 200
        assert client.put("/post-types/3", json={"name": "Ciencia"}).status_code == 200
        assert client.delete("/post-types/3").status_code == 200

    def test_id_beyond_integer_column_is_400(self, client, fake_db):
        response = client.get(f"/post-types/{2**40}")

        assert response.status_code == 400
        assert response.json() == {"error": "Solicitud inválida"}
