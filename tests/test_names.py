"""Tests for resource name helpers."""

import re

import pytest

from kubarango.modules.api.models import ServerGroup
from kubarango.modules.k8s.names import (
    create_database_client_service_dns_name,
    create_member_id,
    create_pod_dns_name,
    create_pod_name,
    validate_resource_name,
)


class TestValidateResourceName:
    @pytest.mark.parametrize("name", ["db", "my-db", "db.example", "a1"])
    def test_valid(self, name):
        validate_resource_name(name)

    @pytest.mark.parametrize("name", ["", "My-DB", "-db", "db-", "db_1", "a" * 254])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            validate_resource_name(name)


def test_member_id_has_group_prefix():
    member_id = create_member_id(ServerGroup.DBSERVERS)
    assert re.fullmatch(r"PRMR-[A-Z0-9]{8}", member_id)
    assert create_member_id(ServerGroup.DBSERVERS) != member_id


def test_pod_name_is_dns_safe():
    assert create_pod_name("db", "dbserver", "PRMR-AB12CD34") == "db-dbserver-prmr-ab12cd34"
    assert create_pod_name("db", "prmr", "PRMR-X", "k3j9a") == "db-prmr-prmr-x-k3j9a"


def test_pod_dns_name():
    assert (
        create_pod_dns_name("db", "ns", "agent", "AGNT-1")
        == "db-agent-agnt-1.db-int.ns.svc"
    )
    assert (
        create_pod_dns_name("db", "ns", "agent", "AGNT-1", "cluster.local")
        == "db-agent-agnt-1.db-int.ns.svc.cluster.local"
    )


def test_client_service_dns_name():
    assert create_database_client_service_dns_name("db", "ns") == "db.ns.svc"
