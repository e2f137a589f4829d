"""
Category mapping for provisioned resources.

Every vendor resource type is normalised into one of four categories. Each
category has a closed set of known fields; anything else a declaration or a
vendor reports travels in a single ``extra`` bag.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field, SerializeAsAny
from pydantic import ValidationError as PydanticValidationError

from stackdock.core.errors import UnmappableResourceTypeError, ValidationError
from stackdock.domain.models import Category

RESOURCE_TYPE_MAP: dict[str, Category] = {
    # Generic kinds accepted from callers
    "server": Category.servers,
    "webService": Category.web_services,
    "domain": Category.domains,
    "database": Category.databases,
    # AWS
    "aws.ec2.Instance": Category.servers,
    "aws.ec2.SpotInstance": Category.servers,
    "aws.lightsail.Instance": Category.servers,
    "aws.s3.Bucket": Category.web_services,
    "aws.cloudfront.Distribution": Category.web_services,
    "aws.lambda.Function": Category.web_services,
    "aws.apigateway.RestApi": Category.web_services,
    "aws.rds.Instance": Category.databases,
    "aws.rds.Cluster": Category.databases,
    "aws.dynamodb.Table": Category.databases,
    "aws.route53.Zone": Category.domains,
    "aws.route53.Record": Category.domains,
    # Cloudflare
    "cloudflare.Worker": Category.web_services,
    "cloudflare.Pages": Category.web_services,
    "cloudflare.Zone": Category.domains,
    # DigitalOcean
    "digitalocean.Droplet": Category.servers,
    "digitalocean.Domain": Category.domains,
    "digitalocean.DatabaseCluster": Category.databases,
}


def category_for(resource_type: str, *, resource_id: str | None = None) -> Category:
    """Look up the category for ``resource_type``; a missing entry is fatal."""
    category = RESOURCE_TYPE_MAP.get(resource_type)
    if category is None:
        raise UnmappableResourceTypeError(resource_type, resource_id)
    return category


def ensure_mappable(resource_types: Iterable[str]) -> None:
    """Fail on the first resource type that has no category (startup check)."""
    for resource_type in sorted(resource_types):
        category_for(resource_type)


class CategoryFields(BaseModel):
    provider: str
    provider_resource_id: str
    status: str = "pending"
    extra: dict[str, Any] = Field(default_factory=dict)


class ServerFields(CategoryFields):
    name: str
    primary_ip_address: str | None = None
    region: str | None = None


class WebServiceFields(CategoryFields):
    name: str
    production_url: str | None = None
    environment: str | None = None
    git_repo: str | None = None


class DomainFields(CategoryFields):
    domain_name: str
    expires_at: datetime | None = None


class DatabaseFields(CategoryFields):
    name: str
    engine: str | None = None
    version: str | None = None


CATEGORY_FIELDS: dict[Category, type[CategoryFields]] = {
    Category.servers: ServerFields,
    Category.web_services: WebServiceFields,
    Category.domains: DomainFields,
    Category.databases: DatabaseFields,
}

_IDENTITY_FIELDS = frozenset({"provider", "provider_resource_id", "extra"})


def known_fields(category: Category) -> frozenset[str]:
    """Fields stored as first-class columns for ``category``."""
    return frozenset(CATEGORY_FIELDS[category].model_fields) - _IDENTITY_FIELDS


class ResourceMapping(BaseModel):
    """A resource normalised into its category's field set."""

    category: Category
    resource_type: str = ""
    mapping: SerializeAsAny[CategoryFields]


def split_fields(
    category: Category, values: Mapping[str, Any]
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Partition ``values`` into (known category fields, extra)."""
    known = known_fields(category)
    matched = {k: v for k, v in values.items() if k in known}
    extra = {k: v for k, v in values.items() if k not in known and k not in _IDENTITY_FIELDS}
    return matched, extra


def map_resource(
    *,
    resource_id: str,
    resource_type: str,
    provider: str,
    configuration: Mapping[str, Any],
    provider_resource_id: str | None = None,
) -> ResourceMapping:
    """Normalise a declaration into its category's closed field set."""
    category = category_for(resource_type, resource_id=resource_id)
    matched, extra = split_fields(category, configuration)

    label = str(configuration.get("name") or resource_type)
    if category == Category.domains:
        matched.setdefault("domain_name", label)
    else:
        matched.setdefault("name", label)

    model = CATEGORY_FIELDS[category]
    try:
        fields = model(
            provider=provider,
            provider_resource_id=provider_resource_id or resource_id,
            extra=extra,
            **matched,
        )
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise ValidationError(field, f"Invalid {field}: {error['msg']}") from exc
    return ResourceMapping(category=category, resource_type=resource_type, mapping=fields)
