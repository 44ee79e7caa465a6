"""
Test per dump e mirror della directory
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from adkeeper.directory_mirror import (
    DirectoryDumper, DirectoryMirror, DirectorySnapshot, generate_password
)
from conftest import FakeConnector


SOURCE = "DC=source,DC=local"
TARGET = "DC=lab,DC=test"
FOREIGN = "CN=S-1-5-21-9-9-9-1105,CN=ForeignSecurityPrincipals,DC=other,DC=com"


@pytest.fixture
def source():
    conn = FakeConnector(base_dn=SOURCE)
    ou = "OU=Sedi,DC=source,DC=local"
    milano = "OU=Milano,OU=Sedi,DC=source,DC=local"
    # Figlio prima del padre: il mirror deve riordinare
    conn.add_entry(milano, objectClass=["top", "organizationalUnit"], name="Milano",
                   description="Filiale di Milano")
    conn.add_entry(ou, objectClass=["top", "organizationalUnit"], name="Sedi")
    user = conn.add_user("mrossi", container=milano, givenName="Mario", sn="Rossi",
                         displayName="Mario Rossi", title="Commerciale",
                         userPrincipalName="mario.rossi@source.local")
    conn.add_group("Vendite", container=milano, members=[user, FOREIGN],
                   groupType=-2147483640, description="Ufficio vendite")
    conn.add_group("Domain Admins", isCriticalSystemObject=True)
    return conn


@pytest.fixture
def snapshot(source):
    return DirectoryDumper(source).dump()


class TestDump:
    """Test DirectoryDumper"""

    def test_dump_contents(self, snapshot):
        assert snapshot.domain == "source.local"
        assert {o["name"] for o in snapshot.ous} == {"Sedi", "Milano"}

        groups = {g["sAMAccountName"]: g for g in snapshot.groups}
        assert groups["Vendite"]["scope"] == "Universal"
        assert groups["Vendite"]["category"] == "Security"
        assert groups["Vendite"]["description"] == "Ufficio vendite"
        assert groups["Domain Admins"]["system"] is True

        [user] = snapshot.users
        assert user["sAMAccountName"] == "mrossi"
        assert user["givenName"] == "Mario"
        assert user["title"] == "Commerciale"

    def test_save_and_load(self, snapshot, tmp_path):
        path = snapshot.save(str(tmp_path / "dump.json"))
        loaded = DirectorySnapshot.load(path)

        assert loaded.base_dn == SOURCE
        assert loaded.users == snapshot.users

    def test_invalid_dump(self):
        with pytest.raises(ValueError):
            DirectorySnapshot.from_dict({"users": []})


class TestMirror:
    """Test DirectoryMirror"""

    def test_mirror_creates_objects(self, snapshot):
        target = FakeConnector(base_dn=TARGET, use_ssl=False)
        mirror = DirectoryMirror(target)
        actions = mirror.mirror(snapshot)

        created = [(a.kind, a.dn) for a in actions if a.status == "created"]
        # OU padri prima dei figli
        assert created[0] == ("ou", "OU=Sedi,DC=lab,DC=test")
        assert created[1] == ("ou", "OU=Milano,OU=Sedi,DC=lab,DC=test")

        group_dn = "CN=Vendite,OU=Milano,OU=Sedi,DC=lab,DC=test"
        user_dn = "CN=mrossi,OU=Milano,OU=Sedi,DC=lab,DC=test"
        assert target.attrs(group_dn)["groupType"] == -2147483640
        assert target.attrs(user_dn)["userPrincipalName"] == "mario.rossi@lab.test"
        assert target.attrs(user_dn)["displayName"] == "Mario Rossi"
        assert "unicodePwd" not in target.attrs(user_dn)
        assert target.attrs(group_dn)["member"] == [user_dn]

    def test_system_and_foreign_skipped(self, snapshot):
        target = FakeConnector(base_dn=TARGET, use_ssl=False)
        actions = DirectoryMirror(target).mirror(snapshot)

        skipped = {a.dn: a.message for a in actions if a.status == "skipped"}
        assert skipped["CN=Domain Admins,CN=Users,DC=lab,DC=test"] == "oggetto di sistema"
        assert any(FOREIGN in dn for dn in skipped)
        assert not target.exists("CN=Domain Admins,CN=Users,DC=lab,DC=test")

    def test_system_ou_skipped(self, source):
        """OU di sistema (Domain Controllers) saltate come gruppi e utenti"""
        source.add_entry("OU=Domain Controllers,DC=source,DC=local",
                         objectClass=["top", "organizationalUnit"],
                         name="Domain Controllers", isCriticalSystemObject=True)
        snapshot = DirectoryDumper(source).dump()
        target = FakeConnector(base_dn=TARGET, use_ssl=False)

        actions = DirectoryMirror(target).mirror(snapshot)

        [action] = [a for a in actions if a.dn == "OU=Domain Controllers,DC=lab,DC=test"]
        assert action.status == "skipped"
        assert not target.exists("OU=Domain Controllers,DC=lab,DC=test")

        DirectoryMirror(target, include_system=True).mirror(snapshot)
        assert target.exists("OU=Domain Controllers,DC=lab,DC=test")

    def test_second_run_is_idempotent(self, snapshot):
        target = FakeConnector(base_dn=TARGET, use_ssl=False)
        DirectoryMirror(target).mirror(snapshot)
        operations = len(target.operations)

        mirror = DirectoryMirror(target)
        actions = mirror.mirror(snapshot)

        assert len(target.operations) == operations
        assert "created" not in {a.status for a in actions}
        assert mirror.get_summary()["ou"] == {"exists": 2}

    def test_dry_run_writes_nothing(self, snapshot):
        target = FakeConnector(base_dn=TARGET, use_ssl=False)
        mirror = DirectoryMirror(target, dry_run=True)
        actions = mirror.mirror(snapshot)

        assert target.operations == []
        summary = mirror.get_summary()
        assert summary["ou"] == {"planned": 2}
        assert summary["user"] == {"planned": 1}
        assert summary["membership"]["planned"] == 1

    def test_random_password_over_ldaps(self, snapshot):
        """Su LDAPS l'utente riceve una password casuale"""
        target = FakeConnector(base_dn=TARGET, use_ssl=True)
        DirectoryMirror(target).mirror(snapshot)

        attrs = target.attrs("CN=mrossi,OU=Milano,OU=Sedi,DC=lab,DC=test")
        assert attrs["userAccountControl"] == 514
        assert isinstance(attrs["unicodePwd"], bytes)

    def test_ou_filter(self, snapshot):
        target = FakeConnector(base_dn=TARGET, use_ssl=False)
        actions = DirectoryMirror(target).mirror(
            snapshot, ou_filter="OU=Milano,OU=Sedi,DC=source,DC=local"
        )

        ous = [a.dn for a in actions if a.kind == "ou"]
        assert ous == ["OU=Milano,OU=Sedi,DC=lab,DC=test"]
        assert not any("Domain Admins" in a.dn for a in actions)

    def test_failure_does_not_stop(self, snapshot):
        """Un errore viene registrato e il mirror prosegue"""
        target = FakeConnector(base_dn=TARGET, use_ssl=False)
        target.fail_on.add("cn=vendite,ou=milano,ou=sedi,dc=lab,dc=test")
        actions = DirectoryMirror(target).mirror(snapshot)

        failed = [a for a in actions if a.status == "failed"]
        assert failed[0].kind == "group"
        assert failed[0].message == "insufficientAccessRights"
        assert target.exists("CN=mrossi,OU=Milano,OU=Sedi,DC=lab,DC=test")


class TestPassword:

    def test_generated_password_complexity(self):
        password = generate_password()
        assert len(password) == 24
        assert any(c.isupper() for c in password)
        assert any(c.isdigit() for c in password)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
