from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.errors import AppError, ClientInputError, register_error_handlers


class Item(BaseModel):
    count: int


def _app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/client")
    async def client_error():
        raise ClientInputError("Bad input")

    @app.get("/teapot")
    async def custom_status():
        raise AppError("Short and stout", status_code=418)

    @app.get("/duplicate")
    async def duplicate():
        raise IntegrityError("INSERT", {}, Exception("unique violation"))

    @app.get("/db-down")
    async def db_down():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret detail")

    @app.post("/items")
    async def create_item(item: Item):
        return item

    return app


def test_app_errors_use_envelope() -> None:
    client = TestClient(_app())
    assert client.get("/client").json() == {"success": False, "message": "Bad input"}
    res = client.get("/teapot")
    assert res.status_code == 418
    assert res.json()["message"] == "Short and stout"


def test_database_errors() -> None:
    client = TestClient(_app())
    res = client.get("/duplicate")
    assert res.status_code == 400
    assert res.json()["message"] == "Duplicate value error"
    res = client.get("/db-down")
    assert res.status_code == 503
    assert res.json()["message"].startswith("Database is temporarily unavailable")


def test_unhandled_error_hides_detail() -> None:
    client = TestClient(_app(), raise_server_exceptions=False)
    res = client.get("/boom")
    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "Internal Server Error"}


def test_validation_error_is_400() -> None:
    client = TestClient(_app())
    res = client.post("/items", json={"count": "many"})
    assert res.status_code == 400
    assert res.json()["success"] is False
    assert res.json()["message"].startswith("count:")
