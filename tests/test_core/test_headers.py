"""
Tests for the metadata header codec.
"""

from vmregistry.core.headers import pull_meta_from_headers, push_meta_into_headers


def test_push_meta():
    headers = push_meta_into_headers({"name": "Ubuntu", "access_count": 3, "kernel": None})

    assert headers == {"x-image-meta-name": "Ubuntu", "x-image-meta-access-count": "3"}


def test_properties_are_flattened():
    headers = push_meta_into_headers({"name": "Ubuntu", "properties": {"distro": "ubuntu"}})

    assert headers["x-image-meta-distro"] == "ubuntu"
    assert "x-image-meta-properties" not in headers


def test_properties_never_shadow_attributes():
    meta = {
        "name": "Ubuntu",
        "status": "queued",
        "checksum": None,
        "properties": {"name": "spoofed", "status": "active", "checksum": "deadbeef", "distro": "ubuntu"},
    }

    headers = push_meta_into_headers(meta)

    assert headers["x-image-meta-name"] == "Ubuntu"
    assert headers["x-image-meta-status"] == "queued"
    assert "x-image-meta-checksum" not in headers
    assert headers["x-image-meta-distro"] == "ubuntu"


def test_pull_meta():
    meta = pull_meta_from_headers({
        "X-Image-Meta-Name": "Ubuntu",
        "x-image-meta-access-count": "3",
        "content-type": "application/octet-stream",
    })

    assert meta == {"name": "Ubuntu", "access_count": "3"}
