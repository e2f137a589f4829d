import pytest
from stackdock.core.errors import PermissionDeniedError, ProviderError
from stackdock.domain.models import ResourceDeclaration
from stackdock.logging import REDACTED, redact_sensitive
from structlog.testing import capture_logs


def test_redact_sensitive_masks_credentials_and_configuration():
    event = {"event": "x", "token": "dop_v1_secret", "configuration": {"password": "p"}, "a": 1}

    redacted = redact_sensitive(None, "info", event)

    assert redacted["token"] == REDACTED
    assert redacted["configuration"] == REDACTED
    assert redacted["a"] == 1


def _audit_entries(logs):
    return [entry for entry in logs if str(entry["event"]).startswith("resource.")]


async def test_successful_provision_is_audited(api, ctx):
    declaration = ResourceDeclaration(
        type="server", provider="vendorx", configuration={"name": "web-1"}
    )

    with capture_logs() as logs:
        resource = await api.provision(ctx, declaration)

    [entry] = _audit_entries(logs)
    assert entry["event"] == "resource.provision"
    assert entry["result"] == "success"
    assert entry["resource_id"] == resource.id
    assert entry["org_id"] == "org-1"
    assert "configuration" not in entry


async def test_failed_operation_is_audited_with_error_kind(api, ctx, fake_backend):
    fake_backend.fail_on.add("provision")
    declaration = ResourceDeclaration(type="server", provider="vendorx", configuration={})

    with capture_logs() as logs:
        with pytest.raises(ProviderError):
            await api.provision(ctx, declaration)

    [entry] = _audit_entries(logs)
    assert entry["result"] == "error"
    assert entry["error"] == "provider"
    assert entry["log_level"] == "warning"


async def test_permission_denied_is_not_audited(api, read_ctx):
    with capture_logs() as logs:
        with pytest.raises(PermissionDeniedError):
            await api.delete(read_ctx, "server-vendorx-1")

    assert _audit_entries(logs) == []
