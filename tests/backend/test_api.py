from urllib.parse import urlsplit

from fastapi.testclient import TestClient

from blobs_lib.client.client import EXPIRES_HEADER
from blobs_lib.metadata import (
    BASE64_PREFIX,
    METADATA_HEADER_EXTERNAL,
    METADATA_HEADER_INTERNAL,
    decode_metadata,
    encode_metadata,
)
from blobs_lib.server.config import ServerConfig
from blobs_lib.server.main import create_app
from tests.helpers import AUTH


def test_put_get_round_trip(http):
    res = http.put("/site/store/a/b", content=b"hello", headers=AUTH)
    assert res.status_code == 200

    res = http.get("/site/store/a/b", headers=AUTH)
    assert res.status_code == 200
    assert res.content == b"hello"
    assert res.headers["etag"].startswith('"')
    assert METADATA_HEADER_INTERNAL not in res.headers


def test_metadata_and_expiry_headers_round_trip(http):
    headers = {**AUTH, METADATA_HEADER_INTERNAL: encode_metadata({"name": "Netlify"}), EXPIRES_HEADER: "1893456000000"}
    assert http.put("/site/store/key", content=b"x", headers=headers).status_code == 200

    res = http.head("/site/store/key", headers=AUTH)
    assert res.status_code == 200
    assert res.content == b""
    assert res.headers["content-length"] == "1"
    assert decode_metadata(res.headers[METADATA_HEADER_INTERNAL]) == {"name": "Netlify"}
    assert res.headers[EXPIRES_HEADER] == "1893456000000"

    res = http.get("/site/store/key", headers=AUTH)
    assert decode_metadata(res.headers[METADATA_HEADER_INTERNAL]) == {"name": "Netlify"}


def test_malformed_metadata_or_expiry_is_a_bad_request(http):
    bad_metadata = {**AUTH, METADATA_HEADER_INTERNAL: BASE64_PREFIX + "%%%"}
    assert http.put("/site/store/key", content=b"x", headers=bad_metadata).status_code == 400
    bad_expiry = {**AUTH, EXPIRES_HEADER: "never"}
    assert http.put("/site/store/key", content=b"x", headers=bad_expiry).status_code == 400


def test_missing_blob_and_parent_prefix_are_not_found(http):
    http.put("/site/store/a/b", content=b"x", headers=AUTH)
    assert http.get("/site/store/missing", headers=AUTH).status_code == 404
    assert http.get("/site/store/a", headers=AUTH).status_code == 404
    assert http.head("/site/store/a", headers=AUTH).status_code == 404
    assert http.delete("/site/store/a", headers=AUTH).status_code == 404


def test_delete_is_idempotent(http):
    http.put("/site/store/key", content=b"x", headers=AUTH)
    assert http.delete("/site/store/key", headers=AUTH).status_code == 204
    assert http.delete("/site/store/key", headers=AUTH).status_code == 404
    assert http.get("/site/store/key", headers=AUTH).status_code == 404


def test_malformed_paths_are_bad_requests(http):
    assert http.get("/", headers=AUTH).status_code == 400
    assert http.put("/site/store", content=b"x", headers=AUTH).status_code == 400
    assert http.put("/site", content=b"x", headers=AUTH).status_code == 400
    assert http.put("/site/store/a//b", content=b"x", headers=AUTH).status_code == 400
    assert http.get("/site/store?cursor=!!!!", headers=AUTH).status_code == 400


def test_access_requires_the_token(http):
    assert http.get("/site/store/key").status_code == 403
    assert http.get("/site/store/key", headers={"authorization": "Bearer wrong"}).status_code == 403
    assert http.get("/site/store/key", headers={"authorization": "secret"}).status_code == 403
    # Access is checked before the method.
    assert http.post("/site/store/key").status_code == 403
    assert http.post("/site/store/key", headers=AUTH).status_code == 405


def test_without_a_token_every_request_is_allowed(tmp_path):
    http = TestClient(create_app(ServerConfig(directory=str(tmp_path))))
    assert http.put("/site/store/key", content=b"open").status_code == 200
    assert http.get("/site/store/key").content == b"open"


def test_write_conflicting_with_a_prefix_fails(http):
    http.put("/site/store/a/b", content=b"x", headers=AUTH)
    assert http.put("/site/store/a", content=b"y", headers=AUTH).status_code == 500
    assert http.put("/site/store/a/b/c", content=b"z", headers=AUTH).status_code == 500
    assert http.get("/site/store/a/b", headers=AUTH).content == b"x"


def test_list_scenario(http):
    for key in ["coldplay/parachutes/shiver", "coldplay/parachutes/spies", "phoenix/united/too-young"]:
        http.put(f"/site/music/{key}", content=key.encode(), headers=AUTH)

    body = http.get("/site/music", params={"prefix": "coldplay/"}, headers=AUTH).json()
    assert [b["key"] for b in body["blobs"]] == ["coldplay/parachutes/shiver", "coldplay/parachutes/spies"]
    assert "directories" not in body
    assert "next_cursor" not in body
    assert set(body["blobs"][0]) == {"etag", "key", "size", "last_modified"}

    body = http.get("/site/music", params={"directories": "true"}, headers=AUTH).json()
    assert body["blobs"] == []
    assert body["directories"] == ["coldplay", "phoenix"]


def test_list_of_an_empty_store_is_ok(http):
    res = http.get("/site/empty", headers=AUTH)
    assert res.status_code == 200
    assert res.json() == {"blobs": []}


def test_list_stores(http):
    http.put("/site/music/k", content=b"x", headers=AUTH)
    http.put("/site/movies/k", content=b"x", headers=AUTH)
    http.put("/other/photos/k", content=b"x", headers=AUTH)
    assert http.get("/site", headers=AUTH).json() == {"stores": ["movies", "music"]}
    assert http.get("/site", params={"prefix": "mu"}, headers=AUTH).json() == {"stores": ["music"]}


def test_server_side_pagination(tmp_path):
    http = TestClient(create_app(ServerConfig(directory=str(tmp_path), token="secret", page_size=2)))
    for i in range(5):
        http.put(f"/site/store/k{i}", content=b"x", headers=AUTH)

    keys = []
    params = {}
    while True:
        body = http.get("/site/store", params=params, headers=AUTH).json()
        keys.extend(b["key"] for b in body["blobs"])
        if "next_cursor" not in body:
            break
        params = {"cursor": body["next_cursor"]}
    assert keys == ["k0", "k1", "k2", "k3", "k4"]


# -- control plane ---------------------------------------------------------

def test_signed_url_flow(http):
    res = http.put("/api/v1/sites/site/blobs/a/b", params={"context": "store"}, headers=AUTH)
    assert res.status_code == 200
    url = res.json()["url"]
    assert urlsplit(url).path == "/site/store/a/b"

    # The signed URL works without the bearer token, for the signed method only.
    assert http.put(url, content=b"signed").status_code == 200
    assert http.get(url).status_code == 403

    get_url = http.get("/api/v1/sites/site/blobs/a/b", params={"context": "store"}, headers=AUTH).json()["url"]
    assert http.get(get_url).content == b"signed"


def test_tampered_signature_is_forbidden(http):
    url = http.get("/api/v1/sites/site/blobs/key", params={"context": "store"}, headers=AUTH).json()["url"]
    assert http.get(url.replace("/key?", "/other?")).status_code == 403
    assert http.get(url[:-1] + ("0" if url[-1] != "0" else "1")).status_code == 403


def test_control_plane_requires_token_and_context(http):
    assert http.get("/api/v1/sites/site/blobs/key", params={"context": "store"}).status_code == 401
    assert http.get("/api/v1/sites/site/blobs/key", headers=AUTH).status_code == 400
    assert http.get("/api/v1/sites/site/blobs").status_code == 401


def test_control_plane_serves_head_delete_and_listings(http):
    headers = {**AUTH, METADATA_HEADER_INTERNAL: encode_metadata({"v": 1})}
    http.put("/site/store/a/b", content=b"x", headers=headers)

    res = http.head("/api/v1/sites/site/blobs/a/b", params={"context": "store"}, headers=AUTH)
    assert res.status_code == 200
    assert decode_metadata(res.headers[METADATA_HEADER_EXTERNAL]) == {"v": 1}

    listing = http.get("/api/v1/sites/site/blobs", params={"context": "store"}, headers=AUTH).json()
    assert [b["key"] for b in listing["blobs"]] == ["a/b"]
    assert http.get("/api/v1/sites/site/blobs", headers=AUTH).json() == {"stores": ["store"]}

    assert http.delete("/api/v1/sites/site/blobs/a/b", params={"context": "store"}, headers=AUTH).status_code == 204
    assert http.head("/api/v1/sites/site/blobs/a/b", params={"context": "store"}, headers=AUTH).status_code == 404


def test_unexpected_lookup_error_is_a_server_error(app, http, monkeypatch):
    storage = app.state.container.get("storage")

    async def broken_head(site, store, key):
        return {}["etag"]

    monkeypatch.setattr(storage, "head", broken_head)
    assert http.head("/site/store/key", headers=AUTH).status_code == 500
