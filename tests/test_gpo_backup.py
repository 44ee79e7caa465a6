"""
Test per backup e ripristino GPO
"""

import json
import os
import pytest
import sys
from pathlib import Path

from impacket.ldap import ldaptypes

sys.path.insert(0, str(Path(__file__).parent.parent))

from adkeeper.gpo_backup import (
    GpoBackupManager, GpoLink, parse_gplink, format_gplink, link_order,
    apply_trustees, grant_apply, normalize_guid
)
from conftest import FakeConnector, FakeSysvol


GUID = "{A1B2C3D4-1111-2222-3333-444455556666}"
OTHER = "{31B2F340-016D-11D2-945F-00C04FB984F9}"
FILTER_ID = "{0F0E0D0C-AAAA-BBBB-CCCC-DDDDEEEEFFFF}"
BASE = "DC=example,DC=local"
GPO_DN = f"CN={GUID},CN=Policies,CN=System,{BASE}"
OTHER_DN = f"CN={OTHER},CN=Policies,CN=System,{BASE}"
OU_DN = f"OU=Workstations,{BASE}"
SITE_DN = f"CN=Milano,CN=Sites,CN=Configuration,{BASE}"
GROUP_SID = "S-1-5-21-1000-2000-3000-1200"
AUTHENTICATED_USERS = "S-1-5-11"


def empty_sd() -> bytes:
    """Security descriptor con DACL vuota"""
    sd = ldaptypes.SR_SECURITY_DESCRIPTOR()
    sd["Revision"] = b"\x01"
    sd["Sbz1"] = b"\x00"
    sd["Control"] = 32772
    sd["OwnerSid"] = ldaptypes.LDAP_SID()
    sd["OwnerSid"].fromCanonical("S-1-5-32-544")
    sd["GroupSid"] = b""
    sd["Sacl"] = b""
    acl = ldaptypes.ACL()
    acl["AclRevision"] = 4
    acl["Sbz1"] = 0
    acl["Sbz2"] = 0
    acl.aces = []
    sd["Dacl"] = acl
    return sd.getData()


def add_wmi_filter(connector, filter_id: str, name: str):
    connector.add_entry(
        f"CN={filter_id},CN=SOM,CN=WMIPolicy,CN=System,{connector.base_dn}",
        **{
            "objectClass": ["top", "msWMI-Som"],
            "msWMI-Name": name,
            "msWMI-Parm1": "Solo client Windows 10",
            "msWMI-Parm2": "1;3;10;66;WQL;root\\CIMv2;SELECT * FROM Win32_OperatingSystem WHERE Version LIKE \"10.%\";",
            "msWMI-ID": filter_id,
        }
    )


@pytest.fixture
def domain(connector, sysvol):
    """Dominio con un GPO collegato a dominio, OU e sito"""
    connector.add_entry(
        GPO_DN,
        objectClass=["top", "container", "groupPolicyContainer"],
        name=GUID,
        displayName="Firewall Workstation",
        versionNumber=65538,
        flags=0,
        gPCFileSysPath=f"\\\\example.local\\SysVol\\example.local\\Policies\\{GUID}",
        gPCFunctionalityVersion=2,
        gPCMachineExtensionNames="[{827D319E-6EAC-11D2-A4EA-00C04F79F83A}{803E14A0-B4FB-11D0-A0D0-00A0C90F574B}]",
        gPCWQLFilter=f"[example.local;{FILTER_ID};0]",
    )
    connector.add_entry(
        OTHER_DN,
        objectClass=["top", "container", "groupPolicyContainer"],
        name=OTHER,
        displayName="Default Domain Policy",
        versionNumber=3,
        flags=0,
    )
    add_wmi_filter(connector, FILTER_ID, "Solo Windows 10")

    # Dominio: primo di due collegamenti (ordine 2), disabilitato
    connector.attrs(BASE)["gPLink"] = (
        f"[LDAP://CN={GUID},CN=Policies,CN=System,{BASE};1]"
        f"[LDAP://CN={OTHER},CN=Policies,CN=System,{BASE};0]"
    )
    # OU: ultimo collegamento (ordine 1), imposto, GUID minuscolo
    connector.add_entry(
        OU_DN,
        objectClass=["top", "organizationalUnit"],
        gPLink=(
            f"[LDAP://cn={OTHER},cn=policies,cn=system,{BASE};0]"
            f"[LDAP://cn={GUID.lower()},cn=policies,cn=system,{BASE};2]"
        ),
        gPOptions=1,
    )
    connector.add_entry(
        SITE_DN,
        objectClass=["top", "site"],
        gPLink=f"[LDAP://CN={GUID},CN=Policies,CN=System,{BASE};0]",
    )

    connector.add_group("GPO-Workstations", objectSid=GROUP_SID)
    connector.security_descriptors[GPO_DN.lower()] = grant_apply(
        empty_sd(), [AUTHENTICATED_USERS, GROUP_SID]
    )

    policy = sysvol.root + f"/example.local/Policies/{GUID}"
    os.makedirs(policy + "/Machine/Microsoft/Windows NT/SecEdit")
    with open(policy + "/GPT.INI", "w") as f:
        f.write("[General]\r\nVersion=65538\r\n")
    with open(policy + "/Machine/Registry.pol", "wb") as f:
        f.write(b"PReg\x01\x00\x00\x00")
    with open(policy + "/Machine/Microsoft/Windows NT/SecEdit/GptTmpl.inf", "w") as f:
        f.write("[Unicode]\r\nUnicode=yes\r\n")

    return GpoBackupManager(connector, sysvol)


class TestGplink:
    """Test parsing gPLink"""

    def test_parse_and_format(self):
        value = f"[LDAP://CN={GUID},CN=Policies,CN=System,{BASE};2][LDAP://{OTHER_DN};1]"
        links = parse_gplink(value)

        assert [link.guid for link in links] == [GUID, OTHER]
        assert links[0].enforced and links[0].enabled
        assert not links[1].enabled
        assert format_gplink(links) == value

    def test_empty_values(self):
        assert parse_gplink(None) == []
        assert parse_gplink(" ") == []

    def test_link_order(self):
        """Ordine 1 = ultima voce di gPLink"""
        links = [GpoLink(OTHER_DN), GpoLink(GPO_DN)]

        assert link_order(links, GUID) == 1
        assert link_order(links, OTHER.lower()) == 2
        assert link_order(links, "{00000000-0000-0000-0000-000000000000}") == 0

    def test_normalize_guid(self):
        assert normalize_guid("a1b2c3d4-1111-2222-3333-444455556666") == GUID


class TestSecurityFiltering:
    """Test DACL e diritto Apply Group Policy"""

    def test_grant_and_read(self):
        sd = grant_apply(empty_sd(), [AUTHENTICATED_USERS, GROUP_SID])

        assert apply_trustees(sd) == [AUTHENTICATED_USERS, GROUP_SID]

    def test_grant_already_present(self):
        """Nessuna modifica se i trustee hanno già il diritto"""
        sd = grant_apply(empty_sd(), [AUTHENTICATED_USERS])

        assert grant_apply(sd, [AUTHENTICATED_USERS]) is None

    def test_empty_descriptor(self):
        assert apply_trustees(None) == []
        assert apply_trustees(empty_sd()) == []


class TestRead:
    """Test lettura GPO"""

    def test_list_gpos(self, domain):
        names = [g["display_name"] for g in domain.list_gpos()]
        assert names == ["Default Domain Policy", "Firewall Workstation"]

    def test_find_gpo(self, domain):
        """Ricerca per GUID (anche senza graffe) o per nome"""
        assert domain.find_gpo(GUID.strip("{}").lower())["dn"] == GPO_DN
        assert domain.find_gpo("Firewall Workstation")["guid"] == GUID
        assert domain.find_gpo("Inesistente") is None

    def test_scope_of_management(self, domain):
        soms = {s.dn: s for s in domain.get_scope_of_management(GUID)}

        assert set(soms) == {BASE, OU_DN, SITE_DN}
        assert soms[BASE].som_type == "domain"
        assert soms[BASE].link_order == 2
        assert soms[BASE].link_enabled is False
        assert soms[OU_DN].link_order == 1
        assert soms[OU_DN].link_enforced is True
        assert soms[OU_DN].block_inheritance is True
        assert soms[SITE_DN].som_type == "site"

    def test_wmi_filter(self, domain):
        wmi = domain.get_wmi_filter(f"[example.local;{FILTER_ID};0]")

        assert wmi["name"] == "Solo Windows 10"
        assert "Win32_OperatingSystem" in wmi["query"]
        assert domain.get_wmi_filter("") is None

    def test_security_filtering_names(self, domain):
        trustees = domain.get_security_filtering(GPO_DN)

        assert trustees == [
            {"sid": AUTHENTICATED_USERS, "name": "Authenticated Users"},
            {"sid": GROUP_SID, "name": "GPO-Workstations"},
        ]


class TestBackup:
    """Test backup"""

    def test_backup_contents(self, domain, tmp_path):
        folder = domain.backup("Firewall Workstation", str(tmp_path / "backup"))

        assert os.path.basename(folder) == GUID
        with open(os.path.join(folder, "gpo.json"), encoding="utf-8") as f:
            data = json.load(f)

        assert data["gpo"]["version"] == 65538
        assert data["gpo"]["machine_extensions"].startswith("[{827D319E")
        assert data["wmi_filter"]["name"] == "Solo Windows 10"
        assert len(data["scope_of_management"]) == 3
        assert [t["name"] for t in data["security_filtering"]] == [
            "Authenticated Users", "GPO-Workstations"
        ]
        assert data["sysvol_files"] == 3
        assert os.path.isfile(os.path.join(
            folder, "sysvol", "Machine", "Microsoft", "Windows NT", "SecEdit", "GptTmpl.inf"
        ))

    def test_backup_unknown_gpo(self, domain, tmp_path):
        with pytest.raises(ValueError):
            domain.backup("Inesistente", str(tmp_path))

    def test_backup_all_manifest(self, domain, tmp_path):
        root = tmp_path / "all"
        root.mkdir()
        manifest = domain.backup_all(str(root))

        assert {m["guid"] for m in manifest} == {GUID, OTHER}
        with open(root / "manifest.json", encoding="utf-8") as f:
            assert len(json.load(f)["gpos"]) == 2

    def test_load_invalid_backup(self, tmp_path):
        with pytest.raises(ValueError):
            GpoBackupManager.load_backup(str(tmp_path))


class TestRestore:
    """Test ripristino"""

    def test_restore_into_other_domain(self, domain, tmp_path):
        """Nuovo GPO con link, filtro WMI e security filtering rimappati"""
        folder = domain.backup(GUID, str(tmp_path / "backup"))

        target = FakeConnector(base_dn="DC=lab,DC=test", domain_sid="S-1-5-21-7-8-9")
        target.default_security_descriptor = empty_sd()
        existing = "{11111111-2222-3333-4444-555555555555}"
        target.add_entry(
            "OU=Workstations,DC=lab,DC=test",
            objectClass=["top", "organizationalUnit"],
            gPLink=f"[LDAP://CN={existing},CN=Policies,CN=System,DC=lab,DC=test;0]",
        )
        add_wmi_filter(target, "{99999999-0000-0000-0000-000000000001}", "Solo Windows 10")
        target.add_group("GPO-Workstations", objectSid="S-1-5-21-7-8-9-1300")
        target_root = tmp_path / "target_sysvol"
        target_root.mkdir()
        target_sysvol = FakeSysvol(str(target_root))

        result = GpoBackupManager(target, target_sysvol).restore(folder)

        assert result.created is True
        assert result.guid != GUID
        new_dn = f"CN={result.guid},CN=Policies,CN=System,DC=lab,DC=test"
        attrs = target.attrs(new_dn)
        assert attrs["displayName"] == "Firewall Workstation"
        assert attrs["versionNumber"] == 65538
        assert attrs["gPCFileSysPath"] == f"\\\\lab.test\\SysVol\\lab.test\\Policies\\{result.guid}"
        assert attrs["gPCWQLFilter"] == "[lab.test;{99999999-0000-0000-0000-000000000001};0]"
        assert target.exists(f"CN=Machine,{new_dn}")
        assert target.exists(f"CN=User,{new_dn}")

        # SYSVOL caricato e GPT.INI riscritto
        policy = target_root / "lab.test" / "Policies" / result.guid
        assert (policy / "Machine" / "Registry.pol").read_bytes() == b"PReg\x01\x00\x00\x00"
        assert "Version=65538" in (policy / "GPT.INI").read_text()

        # Link OU in coda (ordine 1) con flag imposto, dominio creato, sito assente
        ou_links = parse_gplink(target.attrs("OU=Workstations,DC=lab,DC=test")["gPLink"])
        assert [link.guid for link in ou_links] == [existing, result.guid]
        assert ou_links[1].enforced
        domain_links = parse_gplink(target.attrs("DC=lab,DC=test")["gPLink"])
        assert domain_links[0].guid == result.guid
        assert not domain_links[0].enabled

        steps = {(s.step, s.status) for s in result.steps}
        assert ("link", "skipped") in steps
        assert ("security", "done") in steps
        assert apply_trustees(target.get_security_descriptor(new_dn)) == [
            AUTHENTICATED_USERS, "S-1-5-21-7-8-9-1300"
        ]

    def test_restore_existing_gpo(self, domain, connector, sysvol, tmp_path):
        """Il GPO esistente viene aggiornato con versione crescente"""
        folder = domain.backup(GUID, str(tmp_path / "backup"))
        connector.attrs(GPO_DN)["versionNumber"] = 131075
        connector.attrs(GPO_DN)["displayName"] = "Rinominato"

        result = domain.restore(folder)

        assert result.created is False
        assert result.guid == GUID
        attrs = connector.attrs(GPO_DN)
        assert attrs["displayName"] == "Firewall Workstation"
        # Utente 2 -> 3, computer 3 -> 4
        assert attrs["versionNumber"] == (3 << 16) | 4
        assert "Version=196612" in sysvol.read_file(
            f"\\example.local\\Policies\\{GUID}\\GPT.INI"
        ).decode()

        links = [s for s in result.steps if s.step == "link"]
        assert len(links) == 3
        assert all(s.status == "skipped" for s in links)
        security = [s for s in result.steps if s.step == "security"]
        assert security[0].status == "skipped"

    def test_restore_mixed_version_halves(self, domain, connector, tmp_path):
        """Backup con utente più alto ma computer più basso: nessuna metà diminuisce"""
        folder = domain.backup(GUID, str(tmp_path / "backup"))
        connector.attrs(GPO_DN)["versionNumber"] = 50

        domain.restore(folder)

        version = connector.attrs(GPO_DN)["versionNumber"]
        # Utente max(0, 1) + 1, computer max(50, 2) + 1
        assert version == (2 << 16) | 51

    def test_next_version(self):
        assert GpoBackupManager._next_version(65538, (3 << 16) | 5) == (3 << 16) | 5
        assert GpoBackupManager._next_version(50, 1 << 16) == (2 << 16) | 51
        assert GpoBackupManager._next_version((4 << 16) | 1, (1 << 16) | 9) == (5 << 16) | 10
        assert GpoBackupManager._next_version(65538, 65538) == (2 << 16) | 3

    def test_restore_without_links(self, domain, tmp_path):
        folder = domain.backup(GUID, str(tmp_path / "backup"))
        target = FakeConnector(base_dn="DC=lab,DC=test")
        target_root = tmp_path / "target_sysvol"
        target_root.mkdir()

        result = GpoBackupManager(target, FakeSysvol(str(target_root))).restore(
            folder, target_name="Firewall Copia", restore_links=False, restore_security=False
        )

        assert {s.step for s in result.steps} == {"gpc", "sysvol", "wmi_filter"}
        assert result.display_name == "Firewall Copia"
        assert "gPLink" not in target.attrs("DC=lab,DC=test")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
