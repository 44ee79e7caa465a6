"""
Test per JitAdmin
"""

import pytest
from datetime import datetime, timedelta
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from adkeeper.ad_utils import rdn_value
from adkeeper.jit_admin import JitAdmin, parse_ttl_member, METHOD_DYNAMIC, METHOD_TTL


NOW = datetime(2024, 6, 1, 12, 0)
DA = "CN=Domain Admins,CN=Users,DC=example,DC=local"
USER = "CN=mrossi,CN=Users,DC=example,DC=local"
JIT_OU = "OU=JIT,DC=example,DC=local"


@pytest.fixture
def jit(connector):
    connector.add_user("mrossi")
    connector.add_group("Domain Admins")
    return JitAdmin(connector, now=NOW)


def enable_pam(connector):
    connector.add_entry(
        f"CN=Partitions,{connector.configuration_dn}",
        objectClass=["top", "crossRefContainer"],
        **{"msDS-EnabledFeature": [
            "CN=Recycle Bin Feature,CN=Optional Features,CN=Directory Service,"
            "CN=Windows NT,CN=Services,CN=Configuration,DC=example,DC=local",
            "CN=Privileged Access Management Feature,CN=Optional Features,CN=Directory Service,"
            "CN=Windows NT,CN=Services,CN=Configuration,DC=example,DC=local",
        ]}
    )


class TestValidation:
    """Test limiti di durata"""

    def test_limits(self, jit):
        assert jit.validate_minutes(15) == 900
        assert jit.validate_minutes(525960) == 31557600

    def test_out_of_range(self, jit):
        with pytest.raises(ValueError):
            jit.validate_minutes(14)
        with pytest.raises(ValueError):
            jit.validate_minutes(525961)

    def test_unknown_accounts(self, jit):
        with pytest.raises(ValueError):
            jit.grant("nessuno", "Domain Admins", 60)
        with pytest.raises(ValueError):
            jit.grant("mrossi", "mrossi", 60)

    def test_unknown_method(self, jit):
        with pytest.raises(ValueError):
            jit.grant("mrossi", "Domain Admins", 60, method="manuale")


class TestDynamicGrant:
    """Test metodo con gruppo dinamico"""

    def test_grant_creates_dynamic_group(self, jit, connector):
        grant = jit.grant("mrossi", "Domain Admins", 60)

        assert grant.method == METHOD_DYNAMIC
        assert grant.expires_at == NOW + timedelta(hours=1)
        assert grant.remaining_minutes == 60
        assert connector.exists(JIT_OU)

        attrs = connector.attrs(grant.grant_dn)
        assert attrs["objectClass"] == ["dynamicObject", "group"]
        assert attrs["entryTTL"] == 3600
        assert attrs["member"] == [USER]
        assert attrs["sAMAccountName"].startswith("JIT-mrossi-Domain Admins-")
        assert grant.grant_dn in connector.attrs(DA)["member"]

    def test_long_names(self, jit, connector):
        """Nome del gruppo dinamico entro i 64 caratteri di cn"""
        connector.add_user("amministratore.sistemi")
        connector.add_group("Group Policy Creator Owners")

        grant = jit.grant("amministratore.sistemi", "Group Policy Creator Owners", 60)

        cn = rdn_value(grant.grant_dn)
        assert len(cn) <= 64
        assert cn.startswith("JIT-amministratore.sistemi-Group Policy")
        assert cn.endswith("-20240601120000")
        assert connector.attrs(grant.grant_dn)["sAMAccountName"] == cn

    def test_list_and_find(self, jit):
        grant = jit.grant("mrossi", "Domain Admins", 60)

        [listed] = jit.list_grants()
        assert listed.user_dn == USER
        assert listed.group_dn == DA
        assert listed.grant_dn == grant.grant_dn

        name = grant.grant_dn.split(",")[0][3:]
        assert jit.find_grant(name).grant_dn == grant.grant_dn
        assert jit.find_grant("JIT-altro") is None

    def test_extend(self, jit, connector):
        grant = jit.grant("mrossi", "Domain Admins", 60)

        jit.extend(grant, 240)

        assert connector.attrs(grant.grant_dn)["entryTTL"] == 14400
        assert grant.expires_at == NOW + timedelta(hours=4)

    def test_revoke(self, jit, connector):
        grant = jit.grant("mrossi", "Domain Admins", 60)

        jit.revoke(grant)

        assert not connector.exists(grant.grant_dn)
        assert jit.list_grants() == []

    def test_no_jit_ou(self, jit):
        assert jit.list_grants() == []


class TestTtlGrant:
    """Test metodo PAM con membri a tempo"""

    def test_requires_pam(self, jit):
        with pytest.raises(ValueError):
            jit.grant("mrossi", "Domain Admins", 60, method=METHOD_TTL)

    def test_grant_with_ttl(self, jit, connector):
        enable_pam(connector)

        grant = jit.grant("mrossi", "Domain Admins", 30, method=METHOD_TTL)

        assert grant.grant_dn == ""
        assert connector.attrs(DA)["member"] == [f"<TTL=1800,{USER}>"]
        assert not connector.exists(JIT_OU)

    def test_list_ttl_members(self, jit, connector):
        """I membri permanenti non sono concessioni"""
        connector.attrs(DA)["member"] = [
            "CN=Administrator,CN=Users,DC=example,DC=local",
            f"<TTL=600>,{USER}",
        ]

        [grant] = jit.list_grants(group="Domain Admins")

        assert grant.method == METHOD_TTL
        assert grant.user_dn == USER
        assert grant.ttl_seconds == 600

    def test_find_ttl_grant(self, jit, connector):
        """Le concessioni con TTL si trovano per utente indicando il gruppo"""
        enable_pam(connector)
        jit.grant("mrossi", "Domain Admins", 30, method=METHOD_TTL)

        assert jit.find_grant("mrossi") is None
        grant = jit.find_grant("mrossi", group="Domain Admins")
        assert grant.method == METHOD_TTL
        assert grant.user_dn == USER
        assert jit.find_grant(USER, group="Domain Admins").ttl_seconds == 1800

    def test_revoke_ttl_member(self, jit, connector):
        enable_pam(connector)
        grant = jit.grant("mrossi", "Domain Admins", 30, method=METHOD_TTL)

        jit.revoke(grant)

        assert connector.operations[-1] == ("modify", DA)
        assert connector.attrs(DA)["member"] == []


class TestParseTtlMember:

    def test_formats(self):
        assert parse_ttl_member(f"<TTL=600>,{USER}") == (600, USER)
        assert parse_ttl_member(f"<TTL=600,{USER}>") == (600, USER)
        assert parse_ttl_member(USER) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
