import pytest
from aiohttp import FormData
from aiohttp.test_utils import TestClient

from medialib.server.app import USER_HEADER, create_app
from medialib.server.config import ServerConfig
from tests.conftest import TEST_USER, AiohttpClient
from tests.server.conftest import MAX_UPLOAD_SIZE
from tests.server.services.fakes import FakeObjectStore

HEADERS = {USER_HEADER: TEST_USER}


@pytest.fixture
async def client(
    aiohttp_client: AiohttpClient, server_config: ServerConfig
) -> TestClient:
    return await aiohttp_client(
        create_app(server_config, object_store=FakeObjectStore())
    )


async def _upload(
    client: TestClient,
    path: str,
    file_name: str,
    data: bytes,
    content_type: str = "image/png",
    tags: str = "",
):
    form = FormData()
    form.add_field("bucket", "internal")
    form.add_field("path", path)
    if tags:
        form.add_field("tags", tags)
    form.add_field("file", data, filename=file_name, content_type=content_type)
    return await client.post("/api/media/upload", data=form, headers=HEADERS)


async def test_create_folder_and_list(client: TestClient) -> None:
    resp = await client.post(
        "/api/media/folder/create", json={"name": "Docs", "parentPath": ""}
    )
    assert resp.status == 200
    data = await resp.json()
    assert data["success"] is True
    assert data["path"] == "Docs"

    resp = await client.post("/api/media/list", json={"path": ""})
    assert resp.status == 200
    data = await resp.json()
    assert [f["name"] for f in data["folders"]] == ["Docs"]
    assert data["folders"][0]["isFolder"] is True
    assert data["files"] == []


async def test_upload(client: TestClient) -> None:
    resp = await _upload(client, "Docs", "a.png", b"png-bytes", tags="beach, summer")
    assert resp.status == 200
    data = await resp.json()
    assert data["succeeded"] == ["Docs/a.png"]

    resp = await client.post("/api/media/list", json={"path": "Docs"}, headers=HEADERS)
    data = await resp.json()
    (file,) = data["files"]
    assert file["name"] == "a.png"
    assert file["size"] == len(b"png-bytes")
    assert file["mimeType"] == "image/png"
    assert file["uploadedBy"] == TEST_USER
    assert file["tags"] == ["beach", "summer"]
    assert file["favorited"] is False


async def test_upload_guesses_octet_stream(client: TestClient) -> None:
    resp = await _upload(
        client, "Docs", "clip.mp4", b"x", content_type="application/octet-stream"
    )
    assert resp.status == 200

    resp = await client.post("/api/media/list", json={"path": "Docs"})
    (file,) = (await resp.json())["files"]
    assert file["mimeType"] == "video/mp4"
    assert file["category"] == "video"


async def test_upload_too_large(client: TestClient) -> None:
    resp = await _upload(client, "Docs", "big.png", b"x" * (MAX_UPLOAD_SIZE + 1))
    assert resp.status == 413
    data = await resp.json()
    assert data["errorCode"] == "UploadTooLarge"


async def test_upload_requires_multipart(client: TestClient) -> None:
    resp = await client.post("/api/media/upload", json={"path": "Docs"})
    assert resp.status == 400


async def test_invalid_body(client: TestClient) -> None:
    resp = await client.post("/api/media/folder/create", json={"parentPath": ""})
    assert resp.status == 400
    data = await resp.json()
    assert data["errorCode"] == "InvalidRequest"

    resp = await client.post("/api/media/list", json={"bucket": "nope"})
    assert resp.status == 400


async def test_error_statuses(client: TestClient) -> None:
    resp = await client.post("/api/media/list", json={"path": "Missing"})
    assert resp.status == 404
    data = await resp.json()
    assert data["success"] is False
    assert data["errorCode"] == "NotFound"

    resp = await client.post(
        "/api/media/folder/create", json={"name": "..", "parentPath": ""}
    )
    assert resp.status == 400

    await client.post("/api/media/folder/create", json={"name": "Docs"})
    resp = await client.post("/api/media/folder/create", json={"name": "Docs"})
    assert resp.status == 409

    resp = await client.post(
        "/api/media/folder/create", json={"name": "Docs", "bucket": "company"}
    )
    assert resp.status == 400


async def test_rename_move_delete(client: TestClient) -> None:
    await _upload(client, "Docs", "a.png", b"a")
    await client.post("/api/media/folder/create", json={"name": "Archive"})

    resp = await client.post(
        "/api/media/rename", json={"path": "Docs/a.png", "newName": "b.png"}
    )
    assert resp.status == 200
    assert (await resp.json())["newPath"] == "Docs/b.png"

    resp = await client.post(
        "/api/media/move", json={"path": "Docs", "newParent": "Archive"}
    )
    assert resp.status == 200

    resp = await client.post(
        "/api/media/rename_or_move",
        json={"oldPath": "Archive/Docs/b.png", "newPath": "c.png"},
    )
    assert resp.status == 200

    resp = await client.post("/api/media/list", json={"path": ""})
    data = await resp.json()
    assert [f["name"] for f in data["files"]] == ["c.png"]

    resp = await client.post(
        "/api/media/delete", json={"path": "Archive", "isFolder": True}
    )
    assert resp.status == 200
    resp = await client.post("/api/media/list", json={"path": "Archive"})
    assert resp.status == 404


async def test_query(client: TestClient) -> None:
    for name in ("a.png", "b.png", "c.pdf"):
        await _upload(client, "Docs", name, b"x")

    resp = await client.post(
        "/api/media/query",
        json={"path": "Docs", "fileTypes": ["image"], "page": 1, "pageSize": 1},
    )
    assert resp.status == 200
    data = await resp.json()
    assert [item["name"] for item in data["items"]] == ["a.png"]
    assert data["totalCount"] == 2
    assert data["totalPages"] == 2

    resp = await client.post("/api/media/query", json={"path": "Docs", "page": 0})
    assert resp.status == 400
    assert (await resp.json())["errorCode"] == "InvalidQuery"


async def test_favorites_require_user(client: TestClient) -> None:
    await _upload(client, "Docs", "a.png", b"x")

    resp = await client.post("/api/media/favorite", json={"filePath": "Docs/a.png"})
    assert resp.status == 401

    resp = await client.post(
        "/api/media/favorite", json={"filePath": "Docs/a.png"}, headers=HEADERS
    )
    assert resp.status == 200
    assert (await resp.json())["favorite"] is True

    resp = await client.post("/api/media/favorite/list", json={}, headers=HEADERS)
    assert (await resp.json())["paths"] == ["Docs/a.png"]

    resp = await client.post(
        "/api/media/query",
        json={"path": "Docs", "favoritesOnly": True},
        headers={USER_HEADER: "someone-else"},
    )
    assert (await resp.json())["items"] == []


async def test_recent_and_reconcile(client: TestClient) -> None:
    await _upload(client, "Docs", "a.png", b"x")
    await _upload(client, "Docs", "b.png", b"x")

    resp = await client.post("/api/media/recent", json={"limit": 1})
    assert resp.status == 200
    assert [item["name"] for item in (await resp.json())["items"]] == ["b.png"]

    resp = await client.post("/api/media/reconcile", json={"fix": True})
    assert resp.status == 200
    data = await resp.json()
    assert data["scanned"] == 2
    assert data["ok"] == 2


async def test_register_company(client: TestClient) -> None:
    resp = await client.post(
        "/api/media/company/register", json={"companyId": "acme", "name": "Acme"}
    )
    assert resp.status == 200

    resp = await client.post("/api/media/list", json={"bucket": "company"})
    data = await resp.json()
    assert [(f["name"], f["displayName"]) for f in data["folders"]] == [("acme", "Acme")]


async def test_upload_rejects_several_files(client: TestClient) -> None:
    form = FormData()
    form.add_field("bucket", "internal")
    form.add_field("path", "Docs")
    form.add_field("file", b"first", filename="a.png", content_type="image/png")
    form.add_field("file", b"second", filename="b.png", content_type="image/png")
    resp = await client.post("/api/media/upload", data=form, headers=HEADERS)
    assert resp.status == 400
    assert (await resp.json())["errorCode"] == "InvalidRequest"

    resp = await client.post("/api/media/list", json={"path": "Docs"})
    assert resp.status == 404


async def test_query_default_page_size(
    aiohttp_client: AiohttpClient, server_config: ServerConfig
) -> None:
    server_config.default_page_size = 1
    client = await aiohttp_client(
        create_app(server_config, object_store=FakeObjectStore())
    )
    for name in ("a.png", "b.png"):
        await _upload(client, "Docs", name, b"x")

    resp = await client.post("/api/media/query", json={"path": "Docs"})
    data = await resp.json()
    assert data["pageSize"] == 1
    assert data["totalPages"] == 2
    assert [item["name"] for item in data["items"]] == ["a.png"]
