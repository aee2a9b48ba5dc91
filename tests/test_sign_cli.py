from ease_core.sign import main
from ease_core.signature import compute_signature


def test_sign_cli_prints_digest(capsys):
    body = '{"buyer_id":"42","amount":50}'

    exit_code = main([body, "s3cret"])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == compute_signature(body.encode("utf-8"), "s3cret")


def test_sign_cli_without_arguments_exits_with_usage(capsys):
    exit_code = main([])

    assert exit_code == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_sign_cli_with_only_body_is_usage_error():
    assert main(['{"amount":1}']) == 1


def test_sign_cli_rejects_empty_secret(capsys):
    assert main(['{"amount":1}', ""]) == 1
    assert "secret" in capsys.readouterr().err
