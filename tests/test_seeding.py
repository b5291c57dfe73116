from __future__ import annotations

from http import HTTPStatus
from types import SimpleNamespace

import pytest

import metropass.setup as seeding


@pytest.fixture()
def sent(monkeypatch):
    calls = []

    def fakePost(url, headers=None, **kwargs):
        calls.append({"url": url, "headers": dict(headers), **kwargs})
        headers["X-Touched"] = "yes"
        return SimpleNamespace(status_code=HTTPStatus.CREATED, text="")

    monkeypatch.setattr(seeding, "post", fakePost)
    return calls


def test_post_sends_fresh_headers_on_every_call(sent):
    seeding.POST("http://api/stations", json={"name": "Alpha"})
    seeding.POST("http://api/stations", json={"name": "Bravo"})

    assert [call["headers"] for call in sent] == [{}, {}]
    assert sent[1]["json"] == {"name": "Bravo"}


def test_post_fails_on_unexpected_status(sent):
    with pytest.raises(AssertionError):
        seeding.POST("http://api/auth/login", status_code=HTTPStatus.OK)
