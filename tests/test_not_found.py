import logging


def test_diagnostic_lists_every_argument(client):
    resp = client.get("/missing.htm?a=1&b=two&a=3")

    assert resp.status_code == 404
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == (
        "URI: /missing.htm\n"
        "Method: GET\n"
        "Arguments: 3\n"
        " NAME:a\n VALUE:1\n"
        " NAME:b\n VALUE:two\n"
        " NAME:a\n VALUE:3\n"
    )


def test_diagnostic_without_arguments(client):
    resp = client.post("/nothing/here")

    assert resp.status_code == 404
    assert resp.text == "URI: /nothing/here\nMethod: POST\nArguments: 0\n"


def test_missing_card_is_announced_first(no_card_client):
    resp = no_card_client.get("/index.htm")

    assert resp.status_code == 404
    assert resp.text == (
        "SDCARD Not Detected\n\n"
        "URI: /index.htm\n"
        "Method: GET\n"
        "Arguments: 0\n"
    )


def test_diagnostic_is_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="recovery_server"):
        client.get("/gone.txt")

    assert "URI: /gone.txt\nMethod: GET\nArguments: 0\n" in caplog.messages


def test_openapi_paths_belong_to_the_card(client):
    assert client.get("/docs").text == "<h1>docs</h1>"
    assert client.get("/openapi.json").status_code == 404


def test_unsupported_method_is_plain_text(client):
    resp = client.put("/notes.txt")

    assert resp.status_code == 405
    assert resp.text == "Method Not Allowed"
