import pytest
from stackdock.core.errors import UnmappableResourceTypeError, ValidationError
from stackdock.domain.models import Category
from stackdock.state.categories import (
    DomainFields,
    ServerFields,
    category_for,
    ensure_mappable,
    known_fields,
    map_resource,
    split_fields,
)


@pytest.mark.parametrize(
    ("resource_type", "category"),
    [
        ("server", Category.servers),
        ("webService", Category.web_services),
        ("domain", Category.domains),
        ("database", Category.databases),
        ("aws.rds.Instance", Category.databases),
        ("cloudflare.Worker", Category.web_services),
        ("digitalocean.Droplet", Category.servers),
    ],
)
def test_category_for(resource_type, category):
    assert category_for(resource_type) == category


def test_unmapped_type_is_fatal():
    with pytest.raises(UnmappableResourceTypeError) as exc_info:
        category_for("aws.sqs.Queue", resource_id="queue-1")

    assert exc_info.value.details == {"resource_type": "aws.sqs.Queue", "resource_id": "queue-1"}


def test_ensure_mappable_reports_the_gap():
    ensure_mappable(["server", "database"])

    with pytest.raises(UnmappableResourceTypeError) as exc_info:
        ensure_mappable(["server", "quantumComputer"])

    assert exc_info.value.resource_type == "quantumComputer"


def test_known_fields_are_closed_per_category():
    assert known_fields(Category.servers) == {"name", "primary_ip_address", "region", "status"}
    assert known_fields(Category.domains) == {"domain_name", "expires_at", "status"}


def test_split_fields_moves_unknown_keys_to_extra():
    matched, extra = split_fields(
        Category.servers, {"name": "web", "region": "nyc1", "image": "ubuntu", "provider": "x"}
    )

    assert matched == {"name": "web", "region": "nyc1"}
    assert extra == {"image": "ubuntu"}


def test_map_resource_uses_closed_field_set():
    mapping = map_resource(
        resource_id="server-do-1",
        resource_type="server",
        provider="digitalocean",
        configuration={"name": "web-1", "region": "nyc3", "size": "s-1vcpu-1gb"},
    )

    assert mapping.category == Category.servers
    assert isinstance(mapping.mapping, ServerFields)
    assert mapping.mapping.name == "web-1"
    assert mapping.mapping.region == "nyc3"
    assert mapping.mapping.provider_resource_id == "server-do-1"
    assert mapping.mapping.extra == {"size": "s-1vcpu-1gb"}
    assert mapping.mapping.status == "pending"


def test_map_resource_domain_defaults_domain_name():
    mapping = map_resource(
        resource_id="domain-do-1",
        resource_type="domain",
        provider="digitalocean",
        configuration={"name": "example.com"},
    )

    assert isinstance(mapping.mapping, DomainFields)
    assert mapping.mapping.domain_name == "example.com"


def test_map_resource_serialises_category_fields():
    mapping = map_resource(
        resource_id="db-1",
        resource_type="database",
        provider="neon",
        configuration={"name": "main", "engine": "pg"},
    )

    dumped = mapping.model_dump()

    assert dumped["mapping"]["engine"] == "pg"


def test_map_resource_rejects_bad_known_field():
    with pytest.raises(ValidationError) as exc_info:
        map_resource(
            resource_id="domain-1",
            resource_type="domain",
            provider="cloudflare",
            configuration={"name": "example.com", "expires_at": "not-a-date"},
        )

    assert exc_info.value.field == "expires_at"
