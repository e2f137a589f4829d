import json

import pytest
import respx
from httpx import Response
from stackdock.clients.base import PermanentHTTPError
from stackdock.clients.digitalocean import DigitalOceanClient
from stackdock.core.errors import ProviderError
from stackdock.providers.base import BackendRequest
from stackdock.providers.digitalocean import DigitalOceanAdapter, normalize_droplet_status

BASE = "https://api.digitalocean.com/v2"

DROPLET = {
    "id": 3164444,
    "name": "web-1",
    "status": "active",
    "size_slug": "s-1vcpu-1gb",
    "region": {"slug": "nyc3", "name": "New York 3"},
    "networks": {
        "v4": [
            {"ip_address": "10.128.0.2", "type": "private"},
            {"ip_address": "104.236.32.182", "type": "public"},
        ]
    },
}


def _client(**kwargs):
    return DigitalOceanClient("dop_v1_test", backoff_factor=0, **kwargs)


def _request(resource_type="server", vendor_id=None, **configuration):
    return BackendRequest(
        resource_id=f"{resource_type}-digitalocean-1",
        resource_type=resource_type,
        configuration=configuration,
        provider_resource_id=vendor_id,
    )


@pytest.mark.parametrize(
    ("status", "expected"),
    [("active", "running"), ("off", "stopped"), ("NEW", "pending"), ("", "unknown")],
)
def test_normalize_droplet_status(status, expected):
    assert normalize_droplet_status(status) == expected


class TestDigitalOceanClient:
    async def test_sends_bearer_token(self):
        client = _client()

        with respx.mock:
            route = respx.get(f"{BASE}/droplets/3164444").mock(
                return_value=Response(200, json={"droplet": DROPLET})
            )

            droplet = await client.get_droplet("3164444")

            assert droplet["id"] == 3164444
            assert route.calls.last.request.headers["Authorization"] == "Bearer dop_v1_test"

    async def test_retries_on_503(self):
        client = _client(max_retries=2)

        with respx.mock:
            route = respx.get(f"{BASE}/droplets/3164444")
            route.side_effect = [Response(503), Response(200, json={"droplet": DROPLET})]

            droplet = await client.get_droplet("3164444")

            assert droplet["name"] == "web-1"
            assert route.call_count == 2

    async def test_permanent_error_is_not_retried(self):
        client = _client()

        with respx.mock:
            route = respx.get(f"{BASE}/droplets/1").mock(return_value=Response(404))

            with pytest.raises(PermanentHTTPError) as exc_info:
                await client.get_droplet("1")

            assert exc_info.value.status_code == 404
            assert route.call_count == 1

    async def test_rename_posts_action(self):
        client = _client()

        with respx.mock:
            route = respx.post(f"{BASE}/droplets/3164444/actions").mock(
                return_value=Response(201, json={"action": {"id": 1, "type": "rename"}})
            )

            action = await client.rename_droplet("3164444", "web-2")

            assert action["type"] == "rename"
            body = json.loads(route.calls.last.request.content)
            assert body == {"type": "rename", "name": "web-2"}


class TestDigitalOceanAdapter:
    async def test_provision_droplet(self):
        adapter = DigitalOceanAdapter(_client())

        with respx.mock:
            respx.post(f"{BASE}/droplets").mock(
                return_value=Response(202, json={"droplet": {**DROPLET, "status": "new"}})
            )

            result = await adapter.provision(
                _request(
                    name="web-1", region="nyc3", size="s-1vcpu-1gb", image="ubuntu-24-04-x64"
                )
            )

        assert result.provider_resource_id == "3164444"
        assert result.status == "pending"
        assert result.fields["region"] == "nyc3"
        assert result.fields["primary_ip_address"] == "104.236.32.182"

    async def test_provision_requires_configuration(self):
        adapter = DigitalOceanAdapter(_client())

        with pytest.raises(ProviderError) as exc_info:
            await adapter.provision(_request(name="web-1"))

        assert "region, size, image" in str(exc_info.value)

    async def test_web_services_are_unsupported(self):
        adapter = DigitalOceanAdapter(_client())

        with pytest.raises(ProviderError):
            await adapter.provision(_request("webService", name="site"))

    async def test_provision_domain(self):
        adapter = DigitalOceanAdapter(_client())

        with respx.mock:
            respx.post(f"{BASE}/domains").mock(
                return_value=Response(201, json={"domain": {"name": "example.com", "ttl": 1800}})
            )

            result = await adapter.provision(_request("domain", name="example.com"))

        assert result.provider_resource_id == "example.com"
        assert result.status == "active"
        assert result.fields["domain_name"] == "example.com"

    async def test_update_database_resizes(self):
        adapter = DigitalOceanAdapter(_client())
        database = {"id": "db-1", "name": "main", "engine": "pg", "status": "online"}

        with respx.mock:
            resize = respx.put(f"{BASE}/databases/db-1/resize").mock(return_value=Response(202))
            respx.get(f"{BASE}/databases/db-1").mock(
                return_value=Response(200, json={"database": database})
            )

            result = await adapter.update(
                _request("database", vendor_id="db-1", size="db-s-2vcpu-4gb", num_nodes=2)
            )

        assert resize.called
        assert result.status == "online"
        assert result.fields["engine"] == "pg"

    async def test_update_without_vendor_id_fails(self):
        adapter = DigitalOceanAdapter(_client())

        with pytest.raises(ProviderError):
            await adapter.update(_request(name="web-1"))

    async def test_describe_returns_none_when_gone(self):
        adapter = DigitalOceanAdapter(_client())

        with respx.mock:
            respx.get(f"{BASE}/droplets/3164444").mock(return_value=Response(404))

            assert await adapter.describe(_request(vendor_id="3164444")) is None

    async def test_delete_treats_not_found_as_done(self):
        adapter = DigitalOceanAdapter(_client())

        with respx.mock:
            route = respx.delete(f"{BASE}/droplets/3164444").mock(return_value=Response(404))

            await adapter.delete(_request(vendor_id="3164444"))

            assert route.call_count == 1

    async def test_vendor_errors_become_provider_errors(self):
        adapter = DigitalOceanAdapter(_client())

        with respx.mock:
            respx.delete(f"{BASE}/databases/db-1").mock(return_value=Response(403))

            with pytest.raises(ProviderError) as exc_info:
                await adapter.delete(_request("database", vendor_id="db-1"))

        assert exc_info.value.provider == "digitalocean"
        assert isinstance(exc_info.value.__cause__, PermanentHTTPError)
