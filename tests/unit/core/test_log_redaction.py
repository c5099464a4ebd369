from unittest.mock import patch

from app.shared.core.logging import audit_log, sensitive_field_redactor


def test_credential_material_is_masked():
    event = {
        "event": "federation_credentials_obtained",
        "account_id": "123456789012",
        "external_id": "confirm-me",
        "credentials": {"AccessKeyId": "ASIA", "SecretAccessKey": "s"},
        "SessionToken": "token",
        "role_arn": "arn:aws:iam::123456789012:role/Reader",
    }

    redacted = sensitive_field_redactor(None, "info", event)

    assert redacted["external_id"] == "[REDACTED]"
    assert redacted["credentials"] == "[REDACTED]"
    assert redacted["SessionToken"] == "[REDACTED]"
    assert redacted["account_id"] == "123456789012"
    assert redacted["role_arn"] == event["role_arn"]


def test_nested_camel_case_keys_are_masked():
    event = {
        "event": "x",
        "metadata": {"params": [{"ExternalId": "abc", "RoleArn": "arn"}]},
    }

    redacted = sensitive_field_redactor(None, "info", event)

    params = redacted["metadata"]["params"][0]
    assert params["ExternalId"] == "[REDACTED]"
    assert params["RoleArn"] == "arn"


def test_audit_log_writes_to_audit_logger():
    with patch("app.shared.core.logging.structlog.get_logger") as get_logger:
        audit_log("linked_account_created", "admin@example.com", {"linked_account_id": "1"})

    get_logger.assert_called_once_with("audit")
    get_logger.return_value.info.assert_called_once_with(
        "linked_account_created",
        actor="admin@example.com",
        metadata={"linked_account_id": "1"},
    )
